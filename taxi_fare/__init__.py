"""
Taxi Fare From Scratch - 택시 요금 회귀 모델 직접 구현
=====================================================

과거 운행 기록으로 Gradient Boosting 회귀 트리를 학습해 택시 요금을 예측합니다.
학습 알고리즘은 NumPy만 사용하여 직접 구현합니다.

구성 요소:
- FeatureEncoder: 카테고리 One-Hot 인코딩 + 숫자 피처 결합
- RegressionTreeBuilder: SSE 감소 기반 CART 회귀 트리
- GradientBoostingTrainer: 잔차 학습 기반 부스팅
- FareModel: 인코더 + 트리 앙상블
- evaluate: R², RMSE 평가
- save_model / load_model: JSON 모델 아티팩트

Author: Taxi Fare From Scratch Project
"""

from .dataset import TripRecord, TRIP_SCHEMA, FieldSpec, load_trips
from .encoder import CategoryVocabulary, FeatureEncoder
from .decision_tree import (
    Leaf,
    RegressionTree,
    RegressionTreeBuilder,
    SplitNode,
    SplitRule,
    TreeConfig,
)
from .gradient_boosting import BoostingConfig, GradientBoostingTrainer
from .model import FareModel
from .evaluation import Metrics, evaluate, evaluate_frame, relative_error
from .persistence import load_model, save_model
from .errors import ConfigurationError, DataFormatError, ModelLoadError

__all__ = [
    'TripRecord',
    'TRIP_SCHEMA',
    'FieldSpec',
    'load_trips',
    'CategoryVocabulary',
    'FeatureEncoder',
    'Leaf',
    'SplitNode',
    'SplitRule',
    'RegressionTree',
    'RegressionTreeBuilder',
    'TreeConfig',
    'BoostingConfig',
    'GradientBoostingTrainer',
    'FareModel',
    'Metrics',
    'evaluate',
    'evaluate_frame',
    'relative_error',
    'load_model',
    'save_model',
    'ConfigurationError',
    'DataFormatError',
    'ModelLoadError',
]

__version__ = '1.0.0'
