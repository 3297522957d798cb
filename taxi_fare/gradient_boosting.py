"""
Gradient Boosting Trainer - From Scratch Implementation
=======================================================

Gradient Boosting은 잔차(residual)를 순차적으로 학습하는 앙상블 방법입니다.

수학적 배경:
-----------
손실 함수 (MSE):
    L(y, F) = (1/2) * (y - F(x))²

음의 그래디언트 (= 잔차):
    r = -∂L/∂F = y - F(x)

업데이트 규칙:
    F_m(x) = F_{m-1}(x) + η * h_m(x)

여기서:
    - F_m(x): m번째 반복 후의 예측
    - η: 학습률 (learning rate)
    - h_m(x): 잔차를 예측하도록 학습된 m번째 트리

알고리즘:
--------
1. 초기화: F_0(x) = mean(y)
2. for m = 1 to M:
   a. 잔차 계산: r_i = y_i - F_{m-1}(x_i)
   b. 잔차에 대해 트리 h_m 학습
   c. 예측 업데이트: F_m(x) = F_{m-1}(x) + η * h_m(x)
3. 최종 예측: F_M(x)

Author: Taxi Fare From Scratch Project
"""

import logging
from dataclasses import dataclass, asdict
from typing import Callable, Dict, List, Optional

import numpy as np

from .decision_tree import RegressionTreeBuilder, TreeConfig
from .encoder import FeatureEncoder
from .errors import ConfigurationError
from .model import FareModel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoostingConfig:
    """
    부스팅 하이퍼파라미터

    Parameters
    ----------
    num_trees : int, default=100
        부스팅 라운드 수 (트리 개수)
    learning_rate : float, default=0.2
        각 트리의 기여도를 조절하는 축소 계수 (shrinkage)
    max_depth : int, default=4
        각 트리의 최대 깊이
    min_leaf_size : int, default=10
        리프 노드에 있어야 하는 최소 샘플 수
    subsample : float, default=1.0
        각 트리 학습에 사용할 샘플 비율 (1.0 미만이면 Stochastic GB)
    seed : int, default=0
        서브샘플링 랜덤 시드
    """
    num_trees: int = 100
    learning_rate: float = 0.2
    max_depth: int = 4
    min_leaf_size: int = 10
    subsample: float = 1.0
    seed: int = 0

    def tree_config(self) -> TreeConfig:
        return TreeConfig(max_depth=self.max_depth, min_leaf_size=self.min_leaf_size)

    def validate(self) -> None:
        if self.num_trees <= 0:
            raise ConfigurationError(f"num_trees는 양수여야 합니다: {self.num_trees}")
        if not self.learning_rate > 0:
            raise ConfigurationError(f"learning_rate는 양수여야 합니다: {self.learning_rate}")
        if not 0.0 < self.subsample <= 1.0:
            raise ConfigurationError(f"subsample은 (0, 1] 범위여야 합니다: {self.subsample}")
        self.tree_config().validate()

    def to_dict(self) -> Dict:
        return asdict(self)


class GradientBoostingTrainer:
    """
    Gradient Boosting 회귀 트레이너 (From Scratch)

    Parameters
    ----------
    config : BoostingConfig
        하이퍼파라미터
    verbose : int, default=0
        학습 과정 로그 수준 (0: 없음, 1: 진행률)

    Attributes
    ----------
    training_history_ : list of dict
        마지막 train() 호출의 라운드별 기록

    Examples
    --------
    >>> import numpy as np
    >>> X = np.random.randn(100, 5)
    >>> y = X[:, 0] * 2 + X[:, 1] + np.random.randn(100) * 0.1
    >>> trainer = GradientBoostingTrainer(BoostingConfig(num_trees=50, min_leaf_size=1))
    >>> model = trainer.train(X, y)
    >>> predictions = model.predict(X[:5])
    """

    def __init__(self, config: Optional[BoostingConfig] = None, verbose: int = 0):
        self.config = config or BoostingConfig()
        self.verbose = verbose
        self.training_history_: List[Dict] = []

    def _calculate_mse(self, y_true: np.ndarray, y_pred: np.ndarray) -> float:
        """MSE 계산"""
        return float(np.mean((y_true - y_pred) ** 2))

    def _calculate_negative_gradient(
        self,
        y: np.ndarray,
        y_pred: np.ndarray
    ) -> np.ndarray:
        """
        음의 그래디언트 계산 (MSE 손실의 경우 = 잔차)

        L = (1/2) * (y - F)²
        -∂L/∂F = y - F = residual
        """
        return y - y_pred

    def train(
        self,
        X: np.ndarray,
        y: np.ndarray,
        encoder: Optional[FeatureEncoder] = None,
        X_val: Optional[np.ndarray] = None,
        y_val: Optional[np.ndarray] = None,
        should_stop: Optional[Callable[[int], bool]] = None
    ) -> FareModel:
        """
        Gradient Boosting 모델 학습

        Parameters
        ----------
        X : ndarray of shape (n_samples, n_features)
            학습 피처 행렬
        y : ndarray of shape (n_samples,)
            타겟 값
        encoder : FeatureEncoder, optional
            X를 만든 인코더. 모델에 함께 저장됨
        X_val, y_val : ndarray, optional
            검증 데이터 (모니터링용)
        should_stop : callable, optional
            should_stop(iteration) -> bool. 각 트리 경계에서 호출되며
            True를 반환하면 지금까지의 트리로 학습을 끝냄

        Returns
        -------
        model : FareModel

        Raises
        ------
        ConfigurationError
            하이퍼파라미터가 유효하지 않거나 학습 데이터가 빈 경우
        """
        config = self.config
        config.validate()

        X = np.asarray(X, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64).ravel()

        if len(y) == 0 or X.shape[0] == 0:
            raise ConfigurationError("학습 데이터가 비어 있습니다")
        if X.ndim != 2:
            raise ValueError(f"X는 2차원이어야 합니다: ndim={X.ndim}")
        if X.shape[0] != len(y):
            raise ValueError(
                f"X와 y의 샘플 수가 일치하지 않습니다: {X.shape[0]} vs {len(y)}"
            )

        n_samples, n_features = X.shape
        rng = np.random.default_rng(config.seed)
        builder = RegressionTreeBuilder(config.tree_config())

        # 초기화: F_0(x) = mean(y)
        base_prediction = float(np.mean(y))
        y_pred = np.full(n_samples, base_prediction)

        has_val = X_val is not None and y_val is not None
        if has_val:
            X_val = np.asarray(X_val, dtype=np.float64)
            y_val = np.asarray(y_val, dtype=np.float64).ravel()
            y_val_pred = np.full(len(y_val), base_prediction)

        trees = []
        self.training_history_ = []

        init_mse = self._calculate_mse(y, y_pred)
        if self.verbose > 0:
            logger.info("Initial MSE: %.4f (base prediction %.4f)", init_mse, base_prediction)

        for m in range(config.num_trees):
            if should_stop is not None and should_stop(m):
                logger.info("Training stopped at tree boundary %d/%d", m, config.num_trees)
                break

            # 1. 음의 그래디언트(잔차) 계산
            residuals = self._calculate_negative_gradient(y, y_pred)

            # 2. 서브샘플링 (Stochastic GB)
            if config.subsample < 1.0:
                n_subsample = max(1, int(n_samples * config.subsample))
                sample_indices = np.sort(rng.choice(n_samples, n_subsample, replace=False))
                tree = builder.build(X[sample_indices], residuals[sample_indices])
            else:
                tree = builder.build(X, residuals)

            # 3. 예측 업데이트: F_m(x) = F_{m-1}(x) + η * h_m(x)
            y_pred = y_pred + config.learning_rate * tree.predict(X)
            trees.append((tree, config.learning_rate))

            train_mse = self._calculate_mse(y, y_pred)
            history_entry = {
                'iteration': m + 1,
                'train_mse': train_mse,
                'train_rmse': float(np.sqrt(train_mse)),
                'residual_mean': float(np.mean(residuals)),
                'residual_std': float(np.std(residuals)),
                'tree_depth': tree.depth(),
                'tree_n_leaves': tree.n_leaves()
            }

            if has_val:
                y_val_pred = y_val_pred + config.learning_rate * tree.predict(X_val)
                val_mse = self._calculate_mse(y_val, y_val_pred)
                history_entry['val_mse'] = val_mse
                history_entry['val_rmse'] = float(np.sqrt(val_mse))

            self.training_history_.append(history_entry)

            if self.verbose > 0 and (m + 1) % max(1, config.num_trees // 10) == 0:
                msg = "Round %d/%d, Train MSE: %.4f"
                args = [m + 1, config.num_trees, train_mse]
                if has_val:
                    msg += ", Val MSE: %.4f"
                    args.append(history_entry['val_mse'])
                logger.info(msg, *args)

        metadata = {
            'config': config.to_dict(),
            'n_train': n_samples,
        }
        if encoder is not None:
            metadata['feature_names'] = encoder.feature_names

        return FareModel(
            base_prediction=base_prediction,
            trees=trees,
            n_features=n_features,
            encoder=encoder,
            metadata=metadata,
            training_history=self.training_history_,
        )
