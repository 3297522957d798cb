"""
Fare Model - 학습된 부스팅 앙상블
=================================

인코더 어휘 + 기본 예측값 + (트리, 가중치) 목록을 묶은 모델.

    F(x) = base_prediction + Σ_m weight_m * h_m(x)

Author: Taxi Fare From Scratch Project
"""

import numpy as np
import pandas as pd
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .dataset import TripRecord
from .decision_tree import RegressionTree
from .encoder import FeatureEncoder


class FareModel:
    """
    택시 요금 예측 모델

    Parameters
    ----------
    base_prediction : float
        초기 예측값 (학습 타겟의 평균)
    trees : list of (RegressionTree, float)
        순서대로 더해지는 (트리, 가중치)
    n_features : int
        피처 벡터 길이
    encoder : FeatureEncoder, optional
        학습된 인코더. 없으면 피처 벡터로만 예측 가능
    metadata : dict, optional
        하이퍼파라미터, 피처 이름 등
    training_history : list of dict, optional
        라운드별 학습 기록
    """

    def __init__(
        self,
        base_prediction: float,
        trees: List[Tuple[RegressionTree, float]],
        n_features: int,
        encoder: Optional[FeatureEncoder] = None,
        metadata: Optional[Dict[str, Any]] = None,
        training_history: Optional[List[Dict[str, Any]]] = None
    ):
        if encoder is not None and encoder.n_features != n_features:
            raise ValueError(
                f"인코더 피처 수와 모델 피처 수가 다릅니다: {encoder.n_features} vs {n_features}"
            )
        self.base_prediction = float(base_prediction)
        self.trees = list(trees)
        self.n_features = n_features
        self.encoder = encoder
        self.metadata = dict(metadata or {})
        self.training_history = list(training_history or [])

    @property
    def n_trees(self) -> int:
        return len(self.trees)

    def _as_matrix(self, X: np.ndarray) -> np.ndarray:
        X = np.asarray(X, dtype=np.float64)
        if X.ndim == 1:
            X = X.reshape(1, -1)
        if X.shape[1] != self.n_features:
            raise ValueError(
                f"피처 수가 일치하지 않습니다: {X.shape[1]} vs {self.n_features}"
            )
        return X

    def predict(self, X: np.ndarray) -> np.ndarray:
        """
        피처 행렬 예측

        F_M(x) = F_0 + Σ w_m * h_m(x)

        Parameters
        ----------
        X : ndarray of shape (n_samples, n_features)

        Returns
        -------
        y_pred : ndarray of shape (n_samples,)
        """
        X = self._as_matrix(X)
        y_pred = np.full(X.shape[0], self.base_prediction)
        for tree, weight in self.trees:
            y_pred = y_pred + weight * tree.predict(X)
        return y_pred

    def staged_predict(self, X: np.ndarray) -> np.ndarray:
        """
        각 부스팅 라운드별 예측 반환 (시각화용)

        Returns
        -------
        predictions : ndarray of shape (n_trees + 1, n_samples)
        """
        X = self._as_matrix(X)
        predictions = np.zeros((self.n_trees + 1, X.shape[0]))
        y_pred = np.full(X.shape[0], self.base_prediction)
        predictions[0] = y_pred
        for i, (tree, weight) in enumerate(self.trees):
            y_pred = y_pred + weight * tree.predict(X)
            predictions[i + 1] = y_pred
        return predictions

    def _require_encoder(self) -> FeatureEncoder:
        if self.encoder is None or not self.encoder.is_fitted:
            raise RuntimeError("인코더가 없는 모델은 TripRecord로 예측할 수 없습니다.")
        return self.encoder

    def predict_trip(self, trip: TripRecord) -> float:
        """운행 1건의 요금 예측 (fare_amount는 무시)"""
        x = self._require_encoder().transform(trip)
        return float(self.predict(x)[0])

    def predict_trips(self, trips: Iterable[TripRecord]) -> np.ndarray:
        return self.predict(self._require_encoder().transform_many(trips))

    def predict_frame(self, frame: pd.DataFrame) -> np.ndarray:
        return self.predict(self._require_encoder().transform_frame(frame))

    @property
    def feature_names(self) -> List[str]:
        if self.encoder is not None and self.encoder.is_fitted:
            return self.encoder.feature_names
        return [f'Feature {i}' for i in range(self.n_features)]

    @property
    def feature_importances_(self) -> np.ndarray:
        """피처 중요도 (모든 트리의 평균)"""
        if not self.trees:
            return np.zeros(self.n_features)
        return np.mean([tree.feature_importances() for tree, _ in self.trees], axis=0)

    def __repr__(self) -> str:
        return (
            f"FareModel("
            f"n_trees={self.n_trees}, "
            f"base_prediction={self.base_prediction:.4f}, "
            f"n_features={self.n_features})"
        )
