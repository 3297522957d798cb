"""
Model Persistence - JSON 직렬화
===============================

모델 아티팩트 하나에 어휘, 트리 앙상블, 메타데이터를 모두 담습니다.
학습 데이터 없이 로드해서 바로 예측할 수 있습니다.

형식:
----
    {
      "format": "taxi-fare-gbrt",
      "version": 1,
      "base_prediction": 11.98,
      "n_features": 9,
      "vocabularies": {"vendor_id": ["VTS", "CMT"], ...} 또는 null,
      "trees": [{"weight": 0.2, "root": {...}}, ...],
      "metadata": {...},
      "training_history": [...]
    }

Python json은 float를 repr 정밀도로 쓰므로 예측값이 비트 단위로 복원됩니다.

Author: Taxi Fare From Scratch Project
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

from .decision_tree import RegressionTree, finite_float
from .encoder import CategoryVocabulary, FeatureEncoder
from .errors import ModelLoadError
from .model import FareModel

logger = logging.getLogger(__name__)

FORMAT_NAME = 'taxi-fare-gbrt'
FORMAT_VERSION = 1


def model_to_dict(model: FareModel) -> Dict[str, Any]:
    """모델을 JSON 직렬화 가능한 딕셔너리로 변환"""
    vocabularies = None
    if model.encoder is not None and model.encoder.is_fitted:
        vocabularies = {
            field: list(vocab.categories)
            for field, vocab in model.encoder.vocabularies_.items()
        }

    return {
        'format': FORMAT_NAME,
        'version': FORMAT_VERSION,
        'base_prediction': model.base_prediction,
        'n_features': model.n_features,
        'vocabularies': vocabularies,
        'trees': [
            {'weight': weight, 'root': tree.to_dict()}
            for tree, weight in model.trees
        ],
        'metadata': model.metadata,
        'training_history': model.training_history,
    }


def model_from_dict(data: Dict[str, Any]) -> FareModel:
    """
    model_to_dict() 결과로부터 모델 복원

    Raises
    ------
    ModelLoadError
        형식 태그/버전이 다르거나 필수 키가 없거나 값이 잘못된 경우
    """
    if not isinstance(data, dict):
        raise ModelLoadError("모델 문서는 JSON 객체여야 합니다")
    if data.get('format') != FORMAT_NAME:
        raise ModelLoadError(f"알 수 없는 모델 형식: {data.get('format')!r}")
    if data.get('version') != FORMAT_VERSION:
        raise ModelLoadError(f"지원하지 않는 모델 버전: {data.get('version')!r}")

    try:
        n_features = int(data['n_features'])
        base_prediction = finite_float(data['base_prediction'], 'base_prediction')

        encoder = None
        if data.get('vocabularies') is not None:
            encoder = FeatureEncoder({
                field: CategoryVocabulary(field, categories)
                for field, categories in data['vocabularies'].items()
            })

        trees = [
            (
                RegressionTree.from_dict(entry['root'], n_features),
                finite_float(entry['weight'], 'weight'),
            )
            for entry in data['trees']
        ]

        return FareModel(
            base_prediction=base_prediction,
            trees=trees,
            n_features=n_features,
            encoder=encoder,
            metadata=data.get('metadata') or {},
            training_history=data.get('training_history') or [],
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise ModelLoadError(f"모델 문서가 손상되었습니다: {e!r}") from e


def save_model(model: FareModel, path: Union[str, Path]) -> Path:
    """모델을 JSON 파일로 저장. 상위 디렉토리는 자동 생성"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(model_to_dict(model), f, ensure_ascii=False)
    logger.info("Model saved: %s (%d trees)", path, model.n_trees)
    return path


def load_model(path: Union[str, Path]) -> FareModel:
    """
    JSON 파일에서 모델 로드

    Raises
    ------
    ModelLoadError
        파일이 없거나 JSON이 아니거나 내용이 손상된 경우
    """
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ModelLoadError(f"모델 파일이 없습니다: {path}") from e
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ModelLoadError(f"모델 파일을 읽을 수 없습니다: {path}: {e}") from e

    model = model_from_dict(data)
    logger.info("Model loaded: %s (%d trees)", path, model.n_trees)
    return model
