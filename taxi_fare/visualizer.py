"""
Fare Visualizer - 학습/평가 시각화 도구
=======================================

주요 기능:
- 부스팅 학습 곡선과 잔차 통계
- 실제 vs 예측 산점도
- 피처 중요도

Author: Taxi Fare From Scratch Project
"""

import logging
from typing import List, Optional, Tuple

import numpy as np
import matplotlib.pyplot as plt

from .model import FareModel

logger = logging.getLogger(__name__)


class FareVisualizer:
    """
    요금 모델 시각화 클래스

    Parameters
    ----------
    figsize : tuple, default=(12, 8)
        기본 Figure 크기
    dpi : int, default=100
        Figure DPI
    """

    def __init__(
        self,
        figsize: Tuple[int, int] = (12, 8),
        dpi: int = 100
    ):
        self.figsize = figsize
        self.dpi = dpi

        self.colors = {
            'primary': '#2E86AB',
            'secondary': '#A23B72',
            'train': '#2E86AB',
            'val': '#F18F01',
        }

    def plot_boosting_curve(
        self,
        model: FareModel,
        title: str = "Boosting Learning Curve",
        figsize: Optional[Tuple[int, int]] = None,
        show_validation: bool = True
    ) -> plt.Figure:
        """
        부스팅 학습 곡선 시각화

        Parameters
        ----------
        model : FareModel
            training_history가 있는 학습된 모델
        show_validation : bool
            검증 곡선 표시 여부

        Returns
        -------
        fig : matplotlib.Figure
        """
        history = model.training_history
        if not history:
            raise ValueError("학습 이력이 없습니다.")

        fig, axes = plt.subplots(1, 2, figsize=figsize or (14, 5), dpi=self.dpi)
        iterations = [h['iteration'] for h in history]

        # 1. RMSE 곡선
        ax1 = axes[0]
        ax1.plot(iterations, [h['train_rmse'] for h in history], label='Train RMSE',
                 color=self.colors['train'], linewidth=2)
        if show_validation and 'val_rmse' in history[0]:
            ax1.plot(iterations, [h['val_rmse'] for h in history], label='Val RMSE',
                     color=self.colors['val'], linewidth=2, linestyle='--')
        ax1.set_xlabel('Iteration', fontsize=11)
        ax1.set_ylabel('RMSE', fontsize=11)
        ax1.set_title('Learning Curve', fontsize=12, fontweight='bold')
        ax1.legend(loc='upper right')
        ax1.grid(True, alpha=0.3)

        # 2. 잔차 통계
        ax2 = axes[1]
        residual_mean = np.array([h['residual_mean'] for h in history])
        residual_std = np.array([h['residual_std'] for h in history])
        ax2.fill_between(
            iterations,
            residual_mean - residual_std,
            residual_mean + residual_std,
            alpha=0.3, color=self.colors['primary']
        )
        ax2.plot(iterations, residual_mean, label='Residual Mean',
                 color=self.colors['primary'], linewidth=2)
        ax2.axhline(y=0, color='red', linestyle='--', alpha=0.5)
        ax2.set_xlabel('Iteration', fontsize=11)
        ax2.set_ylabel('Residual', fontsize=11)
        ax2.set_title('Residual Statistics', fontsize=12, fontweight='bold')
        ax2.legend(loc='upper right')
        ax2.grid(True, alpha=0.3)

        fig.suptitle(title, fontsize=14, fontweight='bold', y=1.02)
        plt.tight_layout()
        return fig

    def plot_actual_vs_predicted(
        self,
        y_true: np.ndarray,
        y_pred: np.ndarray,
        figsize: Optional[Tuple[int, int]] = None,
        title: str = "Actual vs Predicted"
    ) -> plt.Figure:
        """실제 요금 vs 예측 요금 산점도 (대각선 = 완벽한 예측)"""
        y_true = np.asarray(y_true, dtype=np.float64)
        y_pred = np.asarray(y_pred, dtype=np.float64)

        fig, ax = plt.subplots(figsize=figsize or (7, 7), dpi=self.dpi)
        ax.scatter(y_true, y_pred, alpha=0.4, s=10, color=self.colors['primary'])
        min_val = min(y_true.min(), y_pred.min())
        max_val = max(y_true.max(), y_pred.max())
        ax.plot([min_val, max_val], [min_val, max_val], 'r--', linewidth=1)

        rmse = np.sqrt(np.mean((y_true - y_pred) ** 2))
        ax.set_xlabel('Actual Fare', fontsize=10)
        ax.set_ylabel('Predicted Fare', fontsize=10)
        ax.set_title(f'{title}\nRMSE: {rmse:.2f}', fontsize=12, fontweight='bold')
        ax.grid(True, alpha=0.3)

        plt.tight_layout()
        return fig

    def plot_feature_importance(
        self,
        model: FareModel,
        feature_names: Optional[List[str]] = None,
        top_k: int = 15,
        figsize: Optional[Tuple[int, int]] = None,
        title: str = "Feature Importance"
    ) -> plt.Figure:
        """모델의 피처 중요도 (상위 top_k개)"""
        importances = model.feature_importances_
        names = feature_names or model.feature_names

        indices = np.argsort(importances)[::-1][:top_k]

        fig, ax = plt.subplots(figsize=figsize or (8, 6), dpi=self.dpi)
        ax.barh(
            range(len(indices)),
            importances[indices],
            color=self.colors['secondary'],
            alpha=0.8
        )
        ax.set_yticks(range(len(indices)))
        ax.set_yticklabels([names[i] for i in indices])
        ax.invert_yaxis()
        ax.set_xlabel('Importance', fontsize=10)
        ax.set_title(title, fontsize=12, fontweight='bold')
        ax.grid(True, alpha=0.3, axis='x')

        plt.tight_layout()
        return fig

    def save_figure(
        self,
        fig: plt.Figure,
        filepath: str,
        dpi: Optional[int] = None
    ):
        """Figure 저장 후 닫기"""
        fig.savefig(filepath, dpi=dpi or self.dpi, bbox_inches='tight',
                    facecolor='white', edgecolor='none')
        plt.close(fig)
        logger.info("Figure saved: %s", filepath)
