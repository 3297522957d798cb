"""
Feature Encoder - One-Hot 인코딩 기반 피처 변환
===============================================

TripRecord를 고정 길이의 실수 벡터로 변환합니다.

피처 벡터 레이아웃:
-----------------
    [vendor_id one-hot | rate_code one-hot | passenger_count | trip_distance | payment_type one-hot]

- 카테고리 값의 인덱스는 학습 데이터에서 처음 등장한 순서대로 부여 (fit 이후 고정)
- 학습 때 보지 못한 카테고리는 해당 블록 전체가 0 (예외 없음, 정확도만 저하)
- trip_time은 레코드에 있지만 피처 벡터에 포함하지 않음

Author: Taxi Fare From Scratch Project
"""

from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .dataset import TripRecord, category_text, records_to_frame


class CategoryVocabulary:
    """
    카테고리 필드 하나의 값 -> 인덱스 매핑 (불변)

    Parameters
    ----------
    field : str
        필드 이름
    categories : sequence of str
        인덱스 순서대로 나열된 카테고리 값
    """

    def __init__(self, field: str, categories: Sequence[str]):
        self.field = field
        self.categories: Tuple[str, ...] = tuple(category_text(c) for c in categories)
        self._index = {value: i for i, value in enumerate(self.categories)}
        if len(self._index) != len(self.categories):
            raise ValueError(f"{field} 어휘에 중복된 카테고리가 있습니다")

    def __len__(self) -> int:
        return len(self.categories)

    def __contains__(self, value) -> bool:
        return category_text(value) in self._index

    def index_of(self, value) -> Optional[int]:
        """카테고리 인덱스. 보지 못한 값이면 None"""
        return self._index.get(category_text(value))

    def __eq__(self, other) -> bool:
        if not isinstance(other, CategoryVocabulary):
            return NotImplemented
        return self.field == other.field and self.categories == other.categories

    def __repr__(self) -> str:
        return f"CategoryVocabulary({self.field!r}, {list(self.categories)!r})"


class FeatureEncoder:
    """
    One-hot 인코딩 + 숫자 pass-through 피처 변환기

    Attributes
    ----------
    vocabularies_ : dict of str -> CategoryVocabulary
        카테고리 필드별 어휘 (fit 이후 설정)

    Examples
    --------
    >>> encoder = FeatureEncoder()
    >>> encoder.fit(records)
    >>> x = encoder.transform(records[0])
    """

    # (필드, 종류) 순서가 곧 벡터 레이아웃
    LAYOUT: Tuple[Tuple[str, str], ...] = (
        ('vendor_id', 'category'),
        ('rate_code', 'category'),
        ('passenger_count', 'numeric'),
        ('trip_distance', 'numeric'),
        ('payment_type', 'category'),
    )

    def __init__(self, vocabularies: Optional[Dict[str, CategoryVocabulary]] = None):
        self.vocabularies_: Optional[Dict[str, CategoryVocabulary]] = None
        if vocabularies is not None:
            missing = set(self.categorical_fields) - set(vocabularies)
            if missing:
                raise ValueError(f"어휘가 없는 카테고리 필드: {sorted(missing)}")
            self.vocabularies_ = {f: vocabularies[f] for f in self.categorical_fields}

    @property
    def categorical_fields(self) -> List[str]:
        return [name for name, kind in self.LAYOUT if kind == 'category']

    @property
    def is_fitted(self) -> bool:
        return self.vocabularies_ is not None

    def _check_fitted(self):
        if self.vocabularies_ is None:
            raise RuntimeError("인코더가 학습되지 않았습니다. fit()을 먼저 호출하세요.")

    def fit_frame(self, frame: pd.DataFrame) -> Dict[str, CategoryVocabulary]:
        """DataFrame에서 카테고리 어휘 구축 (등장 순서 = 인덱스 순서)"""
        self.vocabularies_ = {
            field: CategoryVocabulary(field, pd.unique(frame[field].map(category_text)))
            for field in self.categorical_fields
        }
        return self.vocabularies_

    def fit(self, records: Iterable[TripRecord]) -> Dict[str, CategoryVocabulary]:
        """
        학습 레코드를 한 번 훑어 카테고리 어휘 구축

        Returns
        -------
        vocabularies : dict of str -> CategoryVocabulary
        """
        return self.fit_frame(records_to_frame(records))

    @property
    def n_features(self) -> int:
        self._check_fitted()
        return sum(
            len(self.vocabularies_[name]) if kind == 'category' else 1
            for name, kind in self.LAYOUT
        )

    @property
    def feature_names(self) -> List[str]:
        """피처 벡터의 각 위치 이름 (예: 'vendor_id=VTS', 'trip_distance')"""
        self._check_fitted()
        names = []
        for name, kind in self.LAYOUT:
            if kind == 'category':
                names.extend(f"{name}={value}" for value in self.vocabularies_[name].categories)
            else:
                names.append(name)
        return names

    def transform(self, record: TripRecord) -> np.ndarray:
        """레코드 1건을 피처 벡터로 변환"""
        self._check_fitted()
        vector = np.zeros(self.n_features, dtype=np.float64)
        offset = 0
        for name, kind in self.LAYOUT:
            value = getattr(record, name)
            if kind == 'category':
                vocab = self.vocabularies_[name]
                idx = vocab.index_of(value)
                if idx is not None:
                    vector[offset + idx] = 1.0
                offset += len(vocab)
            else:
                vector[offset] = float(value)
                offset += 1
        return vector

    def transform_frame(self, frame: pd.DataFrame) -> np.ndarray:
        """
        DataFrame 전체를 피처 행렬로 변환 (벡터화)

        Returns
        -------
        X : ndarray of shape (n_samples, n_features)
        """
        self._check_fitted()
        n_samples = len(frame)
        blocks = []
        for name, kind in self.LAYOUT:
            if kind == 'category':
                vocab = self.vocabularies_[name]
                block = np.zeros((n_samples, len(vocab)), dtype=np.float64)
                codes = pd.Categorical(
                    frame[name].map(category_text), categories=list(vocab.categories)
                ).codes
                seen = codes >= 0   # 보지 못한 값은 -1
                block[np.flatnonzero(seen), codes[seen]] = 1.0
                blocks.append(block)
            else:
                blocks.append(
                    frame[name].to_numpy(dtype=np.float64).reshape(-1, 1)
                )
        return np.hstack(blocks)

    def transform_many(self, records: Union[Iterable[TripRecord], pd.DataFrame]) -> np.ndarray:
        """레코드 목록 또는 DataFrame을 피처 행렬로 변환"""
        if isinstance(records, pd.DataFrame):
            return self.transform_frame(records)
        return self.transform_frame(records_to_frame(records))

    def __repr__(self) -> str:
        if self.vocabularies_ is None:
            return "FeatureEncoder(not fitted)"
        sizes = ", ".join(f"{f}={len(v)}" for f, v in self.vocabularies_.items())
        return f"FeatureEncoder({sizes}, n_features={self.n_features})"
