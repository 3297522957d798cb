"""
Evaluator - 회귀 평가 지표
==========================

    RMSE = sqrt(mean((y_i - ŷ_i)²))
    R²   = 1 - SSE_model / SSE_baseline

SSE_baseline은 평가 데이터 자신의 평균을 예측값으로 쓴 SSE입니다.
SSE_baseline이 0이면 (샘플 1개 또는 타겟이 모두 같음) R²는 NaN이며
RuntimeWarning을 발생시킵니다.

Author: Taxi Fare From Scratch Project
"""

import warnings
from dataclasses import dataclass, asdict
from typing import Dict

import numpy as np
import pandas as pd

from .dataset import target_vector
from .model import FareModel


@dataclass(frozen=True)
class Metrics:
    """평가 결과 (불변)"""
    r_squared: float
    rmse: float
    mae: float
    mse: float
    n_samples: int

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


def regression_metrics(y_true: np.ndarray, y_pred: np.ndarray) -> Metrics:
    """실제값과 예측값으로 평가 지표 계산"""
    y_true = np.asarray(y_true, dtype=np.float64).ravel()
    y_pred = np.asarray(y_pred, dtype=np.float64).ravel()

    if len(y_true) != len(y_pred):
        raise ValueError(
            f"y_true와 y_pred의 길이가 다릅니다: {len(y_true)} vs {len(y_pred)}"
        )
    if len(y_true) == 0:
        raise ValueError("평가 데이터가 비어 있습니다")

    errors = y_true - y_pred
    sse_model = float(np.sum(errors ** 2))
    sse_baseline = float(np.sum((y_true - np.mean(y_true)) ** 2))
    mse = sse_model / len(y_true)

    if sse_baseline == 0.0:
        warnings.warn(
            "평가 타겟의 분산이 0이라 R²를 정의할 수 없습니다 (NaN 반환)",
            RuntimeWarning
        )
        r_squared = float('nan')
    else:
        r_squared = 1.0 - sse_model / sse_baseline

    return Metrics(
        r_squared=r_squared,
        rmse=float(np.sqrt(mse)),
        mae=float(np.mean(np.abs(errors))),
        mse=mse,
        n_samples=len(y_true),
    )


def evaluate(model: FareModel, X: np.ndarray, y: np.ndarray) -> Metrics:
    """
    모델을 평가 데이터에 적용해 지표 계산

    Parameters
    ----------
    model : FareModel
    X : ndarray of shape (n_samples, n_features)
    y : ndarray of shape (n_samples,)

    Returns
    -------
    metrics : Metrics
    """
    return regression_metrics(y, model.predict(X))


def evaluate_frame(model: FareModel, frame: pd.DataFrame) -> Metrics:
    """운행 DataFrame으로 평가 (모델의 인코더로 변환)"""
    return regression_metrics(target_vector(frame), model.predict_frame(frame))


def relative_error(predicted: float, actual: float) -> float:
    """상대 오차 (%) = |actual - predicted| / |actual| * 100"""
    if actual == 0:
        raise ValueError("actual이 0이면 상대 오차를 계산할 수 없습니다")
    return abs(actual - predicted) / abs(actual) * 100.0
