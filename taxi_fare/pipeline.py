"""
Taxi Fare Pipeline - 학습 > 평가 > 예측
=======================================

1. train_evaluate_predict: CSV 로드 > 인코딩 > 부스팅 학습 > 모델 저장 >
   테스트셋 평가 > 샘플 운행 예측
2. load_and_predict: 저장된 모델 로드 > 샘플 운행 예측 (재학습 없음)

Author: Taxi Fare From Scratch Project
"""

import logging
import os
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .dataset import TripRecord, load_trips, target_vector
from .encoder import FeatureEncoder
from .evaluation import Metrics, regression_metrics, relative_error
from .gradient_boosting import BoostingConfig, GradientBoostingTrainer
from .model import FareModel
from .persistence import load_model, save_model

logger = logging.getLogger(__name__)


# 관측 요금이 알려진 샘플 운행
SAMPLE_TRIPS: Tuple[Tuple[TripRecord, float], ...] = (
    (TripRecord('VTS', '1', 1, 1140, 3.75, 'CRD'), 15.5),
    (TripRecord('VTS', '1', 1, 1260, 10.33, 'CSH'), 29.5),
    (TripRecord('VTS', '1', 3, 480, 1.9, 'CRD'), 8.5),
)


@dataclass(frozen=True)
class PipelineConfig:
    """파일 경로와 하이퍼파라미터"""
    train_path: str = os.path.join('Data', 'taxi-fare-train.csv')
    test_path: str = os.path.join('Data', 'taxi-fare-test.csv')
    model_path: str = os.path.join('Data', 'model.json')
    boosting: BoostingConfig = field(default_factory=BoostingConfig)
    plot_dir: Optional[str] = None
    verbose: int = 1


@dataclass(frozen=True)
class SamplePrediction:
    trip: TripRecord
    predicted: float
    actual: float
    error_pct: float


def train_model(config: PipelineConfig) -> FareModel:
    """학습 CSV로 인코더와 부스팅 모델을 학습하고 저장"""
    frame = load_trips(config.train_path)

    encoder = FeatureEncoder()
    encoder.fit_frame(frame)
    X = encoder.transform_frame(frame)
    y = target_vector(frame)
    logger.info("Training on %d trips, %d features (%r)", len(y), X.shape[1], encoder)

    trainer = GradientBoostingTrainer(config.boosting, verbose=config.verbose)
    model = trainer.train(X, y, encoder=encoder)

    save_model(model, config.model_path)
    return model


def evaluate_model(model: FareModel, config: PipelineConfig) -> Tuple[Metrics, Any, Any]:
    """테스트 CSV로 평가. (metrics, y_true, y_pred) 반환"""
    frame = load_trips(config.test_path)
    y_true = target_vector(frame)
    y_pred = model.predict_frame(frame)
    return regression_metrics(y_true, y_pred), y_true, y_pred


def score_samples(
    model: FareModel,
    samples: Sequence[Tuple[TripRecord, float]] = SAMPLE_TRIPS
) -> List[SamplePrediction]:
    """샘플마다 자신의 예측값으로 상대 오차 계산"""
    results = []
    for trip, actual in samples:
        predicted = model.predict_trip(trip)
        results.append(SamplePrediction(
            trip=trip,
            predicted=predicted,
            actual=actual,
            error_pct=relative_error(predicted, actual),
        ))
    return results


def print_metrics(metrics: Metrics):
    print()
    print("*" * 50)
    print("*       Model quality metrics")
    print("*" + "-" * 49)
    print(f"*       RSquared Score:          {metrics.r_squared:0.2f}")
    print(f"*       Root Mean Squared Error: {metrics.rmse:.2f}")
    print(f"*       Mean Absolute Error:     {metrics.mae:.2f}")
    print(f"*       Samples:                 {metrics.n_samples}")


def print_sample_predictions(samples: List[SamplePrediction]):
    print("*" * 70)
    for sample in samples:
        print(
            f"Predicted: {sample.predicted:.4f}, "
            f"Actual: {sample.actual}, "
            f"Error: {sample.error_pct:.2f}%"
        )
    print("*" * 70)


def _save_plots(model: FareModel, y_true, y_pred, plot_dir: str):
    from .visualizer import FareVisualizer

    os.makedirs(plot_dir, exist_ok=True)
    viz = FareVisualizer()
    viz.save_figure(viz.plot_boosting_curve(model), os.path.join(plot_dir, 'boosting_curve.png'))
    viz.save_figure(
        viz.plot_actual_vs_predicted(y_true, y_pred),
        os.path.join(plot_dir, 'actual_vs_predicted.png')
    )
    viz.save_figure(viz.plot_feature_importance(model), os.path.join(plot_dir, 'feature_importance.png'))


def train_evaluate_predict(config: PipelineConfig) -> Dict[str, Any]:
    """
    학습 > 평가 > 샘플 예측 전체 실행

    Returns
    -------
    result : dict
        model, metrics, samples, timings
    """
    timings = {}
    start = perf_counter()

    model = train_model(config)
    timings['train'] = perf_counter() - start

    metrics, y_true, y_pred = evaluate_model(model, config)
    timings['evaluate'] = perf_counter() - start
    print_metrics(metrics)

    samples = score_samples(model)
    timings['predict'] = perf_counter() - start
    print_sample_predictions(samples)

    if config.plot_dir:
        _save_plots(model, y_true, y_pred, config.plot_dir)

    for phase, elapsed in timings.items():
        logger.info("%s finished at %.2fs", phase, elapsed)

    return {
        'model': model,
        'metrics': metrics,
        'samples': samples,
        'timings': timings,
    }


def load_and_predict(config: PipelineConfig) -> Dict[str, Any]:
    """저장된 모델로 샘플 예측 (학습/평가 생략)"""
    timings = {}
    start = perf_counter()

    model = load_model(config.model_path)
    timings['load'] = perf_counter() - start

    samples = score_samples(model)
    timings['predict'] = perf_counter() - start
    print_sample_predictions(samples)

    for phase, elapsed in timings.items():
        logger.info("%s finished at %.2fs", phase, elapsed)

    return {
        'model': model,
        'samples': samples,
        'timings': timings,
    }
