"""
Regression Tree Builder - From Scratch Implementation
=====================================================

CART (Classification and Regression Trees) 기반 회귀 트리 구현.
부스팅의 약한 학습기(weak learner)로 잔차를 학습하는 데 사용합니다.

수학적 배경:
-----------
분할 기준: SSE (Sum of Squared Errors) 감소 최대화

노드의 SSE:
    SSE(S) = Σ(y_i - ȳ_S)² = Σy_i² - (Σy_i)² / n

분할 이득:
    Gain = SSE(parent) - [SSE(left) + SSE(right)]

임계값 후보: 노드 안에서 정렬된 고유값들의 인접 중간점.
정렬 후 누적합(cumulative sum)을 쓰면 한 피처의 모든 임계값에 대한
이득을 O(n)에 계산할 수 있습니다.

최적 분할: Gain이 최대인 (feature, threshold).
동점이면 피처 인덱스가 작은 쪽, 그 다음 임계값이 작은 쪽.

예측:
    leaf_prediction = mean(y_samples in leaf)

Author: Taxi Fare From Scratch Project
"""

import math

import numpy as np
from typing import Optional, Tuple, Dict, List, Any, Union
from dataclasses import dataclass

from .errors import ConfigurationError


def finite_float(value, name: str) -> float:
    """float 변환 후 NaN/inf이면 ValueError"""
    result = float(value)
    if not math.isfinite(result):
        raise ValueError(f"{name}이(가) 유한하지 않습니다: {result}")
    return result


# 부동소수점 상쇄 오차보다 작은 이득은 분할로 보지 않음
_RELATIVE_GAIN_TOL = 1e-12


@dataclass(frozen=True)
class SplitRule:
    """x[feature_idx] <= threshold 이면 왼쪽, 아니면 오른쪽"""
    feature_idx: int
    threshold: float

    def goes_left(self, x: np.ndarray) -> bool:
        return x[self.feature_idx] <= self.threshold


@dataclass(frozen=True)
class Leaf:
    """리프 노드: 상수 예측값"""
    value: float
    n_samples: int = 0


@dataclass(frozen=True)
class SplitNode:
    """내부 노드: 분할 규칙과 두 자식 (자식은 이 노드만 소유)"""
    rule: SplitRule
    left: 'TreeNode'
    right: 'TreeNode'
    n_samples: int = 0
    gain: float = 0.0


TreeNode = Union[Leaf, SplitNode]


@dataclass(frozen=True)
class TreeConfig:
    """
    트리 하이퍼파라미터

    max_depth : 루트 깊이 0 기준 최대 깊이 (0이면 리프 하나)
    min_leaf_size : 이보다 작은 노드는 분할하지 않으며, 분할 후 양쪽 자식도 이 크기 이상
    """
    max_depth: int = 4
    min_leaf_size: int = 1

    def validate(self) -> None:
        if self.max_depth < 0:
            raise ConfigurationError(f"max_depth는 0 이상이어야 합니다: {self.max_depth}")
        if self.min_leaf_size < 1:
            raise ConfigurationError(f"min_leaf_size는 1 이상이어야 합니다: {self.min_leaf_size}")


class RegressionTree:
    """
    학습된 회귀 트리 (불변)

    Parameters
    ----------
    root : Leaf or SplitNode
        루트 노드
    n_features : int
        학습 피처 수
    """

    def __init__(self, root: TreeNode, n_features: int):
        self.root = root
        self.n_features = n_features

    def _predict_single(self, x: np.ndarray) -> float:
        """단일 샘플 예측"""
        node = self.root
        while isinstance(node, SplitNode):
            node = node.left if node.rule.goes_left(x) else node.right
        return node.value

    def predict(self, X: np.ndarray) -> np.ndarray:
        """
        예측 수행

        Parameters
        ----------
        X : ndarray of shape (n_samples, n_features)

        Returns
        -------
        y_pred : ndarray of shape (n_samples,)
        """
        X = np.asarray(X, dtype=np.float64)
        if X.ndim == 1:
            X = X.reshape(1, -1)

        y_pred = np.empty(X.shape[0], dtype=np.float64)

        # 노드별로 샘플 인덱스를 나눠 내려보냄
        stack = [(self.root, np.arange(X.shape[0]))]
        while stack:
            node, idx = stack.pop()
            if isinstance(node, Leaf):
                y_pred[idx] = node.value
                continue
            left_mask = X[idx, node.rule.feature_idx] <= node.rule.threshold
            stack.append((node.left, idx[left_mask]))
            stack.append((node.right, idx[~left_mask]))

        return y_pred

    def depth(self) -> int:
        """트리의 최대 깊이 (리프 하나면 0)"""
        def _depth(node: TreeNode) -> int:
            if isinstance(node, Leaf):
                return 0
            return 1 + max(_depth(node.left), _depth(node.right))
        return _depth(self.root)

    def n_leaves(self) -> int:
        """리프 노드 수"""
        def _count(node: TreeNode) -> int:
            if isinstance(node, Leaf):
                return 1
            return _count(node.left) + _count(node.right)
        return _count(self.root)

    def leaves(self) -> List[Leaf]:
        result = []
        stack = [self.root]
        while stack:
            node = stack.pop()
            if isinstance(node, Leaf):
                result.append(node)
            else:
                stack.extend([node.right, node.left])
        return result

    def feature_importances(self) -> np.ndarray:
        """
        피처 중요도 (SSE 감소량 합, 정규화)

        importance[i] = Σ gain for splits using feature i
        """
        importances = np.zeros(self.n_features)

        stack = [self.root]
        while stack:
            node = stack.pop()
            if isinstance(node, SplitNode):
                importances[node.rule.feature_idx] += node.gain
                stack.extend([node.left, node.right])

        total = np.sum(importances)
        if total > 0:
            importances /= total
        return importances

    def to_dict(self) -> Dict[str, Any]:
        """트리 구조를 중첩 딕셔너리로 내보내기 (직렬화용)"""
        def _node_to_dict(node: TreeNode) -> Dict[str, Any]:
            if isinstance(node, Leaf):
                return {'value': node.value, 'n_samples': node.n_samples}
            return {
                'feature_idx': node.rule.feature_idx,
                'threshold': node.rule.threshold,
                'n_samples': node.n_samples,
                'gain': node.gain,
                'left': _node_to_dict(node.left),
                'right': _node_to_dict(node.right),
            }

        return _node_to_dict(self.root)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], n_features: int) -> 'RegressionTree':
        """to_dict() 결과로부터 트리 복원. 형식이 틀리면 KeyError/TypeError/ValueError"""
        def _node_from_dict(node: Dict[str, Any]) -> TreeNode:
            if not isinstance(node, dict):
                raise TypeError(f"노드는 dict여야 합니다: {type(node).__name__}")
            if 'value' in node:
                return Leaf(
                    value=finite_float(node['value'], 'value'),
                    n_samples=int(node.get('n_samples', 0)),
                )
            feature_idx = int(node['feature_idx'])
            if not 0 <= feature_idx < n_features:
                raise ValueError(f"피처 인덱스 범위 초과: {feature_idx}")
            return SplitNode(
                rule=SplitRule(feature_idx, finite_float(node['threshold'], 'threshold')),
                left=_node_from_dict(node['left']),
                right=_node_from_dict(node['right']),
                n_samples=int(node.get('n_samples', 0)),
                gain=finite_float(node.get('gain', 0.0), 'gain'),
            )

        return cls(_node_from_dict(data), n_features)

    def __repr__(self) -> str:
        return (
            f"RegressionTree("
            f"depth={self.depth()}, "
            f"n_leaves={self.n_leaves()}, "
            f"n_features={self.n_features})"
        )


class RegressionTreeBuilder:
    """
    SSE 감소 기반 회귀 트리 빌더 (결정적, 난수 없음)

    Parameters
    ----------
    config : TreeConfig
        max_depth, min_leaf_size

    Examples
    --------
    >>> import numpy as np
    >>> X = np.array([[1.0], [2.0], [3.0], [4.0]])
    >>> y = np.array([1.0, 1.0, 5.0, 5.0])
    >>> tree = RegressionTreeBuilder(TreeConfig(max_depth=1)).build(X, y)
    >>> tree.predict(np.array([[1.5], [3.5]]))
    array([1., 5.])
    """

    def __init__(self, config: Optional[TreeConfig] = None):
        self.config = config or TreeConfig()

    def _leaf(self, y: np.ndarray) -> Leaf:
        # 평균은 반올림 오차로 [min, max]를 벗어날 수 있음
        value = float(np.clip(np.mean(y), np.min(y), np.max(y)))
        return Leaf(value=value, n_samples=len(y))

    def _best_split_for_feature(
        self,
        values: np.ndarray,
        y: np.ndarray,
        sse_parent: float
    ) -> Tuple[float, Optional[float]]:
        """
        한 피처의 최적 임계값 탐색

        Returns
        -------
        gain : float
            최대 SSE 감소량 (유효한 분할이 없으면 -inf)
        threshold : float or None
            해당 임계값
        """
        n = len(y)
        min_leaf = self.config.min_leaf_size

        order = np.argsort(values, kind='stable')
        xs = values[order]
        ys = y[order]

        # i번째 경계 = xs[i]와 xs[i+1] 사이
        n_left = np.arange(1, n, dtype=np.float64)
        n_right = n - n_left
        valid = (xs[:-1] < xs[1:]) & (n_left >= min_leaf) & (n_right >= min_leaf)
        if not valid.any():
            return -np.inf, None

        csum = np.cumsum(ys)
        csq = np.cumsum(ys ** 2)
        sum_left = csum[:-1]
        sum_right = csum[-1] - sum_left
        sq_left = csq[:-1]
        sq_right = csq[-1] - sq_left

        sse_left = sq_left - sum_left ** 2 / n_left
        sse_right = sq_right - sum_right ** 2 / n_right
        gains = np.where(valid, sse_parent - sse_left - sse_right, -np.inf)

        # argmax는 첫 최대값 = 가장 작은 임계값
        i = int(np.argmax(gains))
        lo, hi = xs[i], xs[i + 1]
        threshold = (lo + hi) / 2.0
        if not lo <= threshold < hi:
            threshold = lo
        return float(gains[i]), float(threshold)

    def _find_best_split(
        self,
        X: np.ndarray,
        y: np.ndarray
    ) -> Tuple[Optional[int], Optional[float], float]:
        """
        최적의 분할점 탐색

        Returns
        -------
        best_feature : int or None
            최적 분할 피처 인덱스
        best_threshold : float or None
            최적 분할 임계값
        best_gain : float
            최대 SSE 감소량
        """
        # 평균 중심화로 누적합의 상쇄 오차를 줄임
        y_centered = y - np.mean(y)
        sse_parent = float(np.sum(y_centered ** 2))

        best_gain = _RELATIVE_GAIN_TOL * sse_parent
        best_feature = None
        best_threshold = None

        for feature_idx in range(X.shape[1]):
            gain, threshold = self._best_split_for_feature(
                X[:, feature_idx], y_centered, sse_parent
            )
            # 엄격한 부등호: 동점이면 앞선 피처 유지
            if threshold is not None and gain > best_gain:
                best_gain = gain
                best_feature = feature_idx
                best_threshold = threshold

        return best_feature, best_threshold, best_gain

    def _build_node(self, X: np.ndarray, y: np.ndarray, depth: int) -> TreeNode:
        """
        재귀적으로 노드 구축

        종료 조건:
        1. max_depth 도달
        2. 샘플 수 < min_leaf_size 또는 샘플 1개
        3. 모든 타겟값이 동일
        4. 양의 SSE 감소를 주는 분할이 없음
        """
        n_samples = len(y)

        should_stop = (
            depth >= self.config.max_depth or
            n_samples < self.config.min_leaf_size or
            n_samples < 2 or
            np.ptp(y) == 0
        )
        if should_stop:
            return self._leaf(y)

        best_feature, best_threshold, best_gain = self._find_best_split(X, y)
        if best_feature is None:
            return self._leaf(y)

        left_mask = X[:, best_feature] <= best_threshold
        right_mask = ~left_mask

        return SplitNode(
            rule=SplitRule(best_feature, best_threshold),
            left=self._build_node(X[left_mask], y[left_mask], depth + 1),
            right=self._build_node(X[right_mask], y[right_mask], depth + 1),
            n_samples=n_samples,
            gain=best_gain,
        )

    def build(self, X: np.ndarray, y: np.ndarray) -> RegressionTree:
        """
        회귀 트리 학습

        Parameters
        ----------
        X : ndarray of shape (n_samples, n_features)
            피처 행렬
        y : ndarray of shape (n_samples,)
            타겟 (부스팅에서는 잔차)

        Returns
        -------
        tree : RegressionTree
        """
        self.config.validate()

        X = np.asarray(X, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64).ravel()

        if X.ndim != 2:
            raise ValueError(f"X는 2차원이어야 합니다: ndim={X.ndim}")
        if X.shape[0] != len(y):
            raise ValueError(
                f"X와 y의 샘플 수가 일치하지 않습니다: {X.shape[0]} vs {len(y)}"
            )
        if len(y) == 0:
            raise ConfigurationError("빈 데이터로 트리를 만들 수 없습니다")

        return RegressionTree(self._build_node(X, y, depth=0), n_features=X.shape[1])
