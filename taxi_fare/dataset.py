"""
Trip Dataset - 스키마 정의와 CSV 로딩
======================================

택시 운행 기록(TripRecord)의 스키마와 CSV 파일 로더.

CSV 형식:
--------
UTF-8, 쉼표 구분, 헤더 1행. 컬럼은 이름이 아니라 위치로 매핑됩니다.

    vendor_id, rate_code, passenger_count, trip_time, trip_distance,
    payment_type, fare_amount

형식이 잘못된 행(컬럼 수 불일치, 숫자 컬럼의 비숫자 값)이 하나라도 있으면
DataFormatError로 로딩 전체가 실패합니다. 부분 데이터셋은 반환하지 않습니다.

Author: Taxi Fare From Scratch Project
"""

import logging
import re
from dataclasses import dataclass, astuple
from typing import Iterable, List, Tuple, Union
from pathlib import Path

import numpy as np
import pandas as pd

from .errors import DataFormatError

logger = logging.getLogger(__name__)

CATEGORY = 'category'
NUMERIC = 'numeric'


@dataclass(frozen=True)
class FieldSpec:
    """스키마의 한 컬럼 (이름, 종류)"""
    name: str
    kind: str


# 파일 컬럼 순서 그대로
TRIP_SCHEMA: Tuple[FieldSpec, ...] = (
    FieldSpec('vendor_id', CATEGORY),
    FieldSpec('rate_code', CATEGORY),
    FieldSpec('passenger_count', NUMERIC),
    FieldSpec('trip_time', NUMERIC),
    FieldSpec('trip_distance', NUMERIC),
    FieldSpec('payment_type', CATEGORY),
    FieldSpec('fare_amount', NUMERIC),
)

FIELD_NAMES: Tuple[str, ...] = tuple(spec.name for spec in TRIP_SCHEMA)
TARGET_FIELD = 'fare_amount'


@dataclass(frozen=True)
class TripRecord:
    """택시 운행 1건. fare_amount가 회귀 타겟이며 예측 입력에서는 0.0"""

    vendor_id: str
    rate_code: str
    passenger_count: float
    trip_time: float
    trip_distance: float
    payment_type: str
    fare_amount: float = 0.0


def category_text(value) -> str:
    """카테고리 값을 파일 표기 문자열로 (정수형 실수 1.0 -> '1')"""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _line_from_parser_error(message: str):
    match = re.search(r'line (\d+)', message)
    return int(match.group(1)) if match else None


def _first_undecodable_line(path: Path, encoding: str):
    with open(path, 'rb') as f:
        for line_no, line in enumerate(f, start=1):
            try:
                line.decode(encoding)
            except UnicodeDecodeError:
                return line_no
    return None


def load_trips(path: Union[str, Path]) -> pd.DataFrame:
    """
    CSV 파일을 읽어 스키마 컬럼명을 가진 DataFrame으로 반환

    헤더도 데이터 행으로 읽어 모든 행의 필드 수를 헤더와 비교합니다.
    (header=0이면 pandas가 남는 첫 필드를 인덱스로 흡수함)

    Parameters
    ----------
    path : str or Path
        CSV 파일 경로

    Returns
    -------
    frame : DataFrame
        카테고리 컬럼은 str, 숫자 컬럼은 float64

    Raises
    ------
    DataFormatError
        형식이 잘못된 행이 있는 경우 (row 속성에 파일 라인 번호)
    FileNotFoundError
        파일이 없는 경우
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"데이터 파일이 없습니다: {path}")

    encoding = 'utf-8'
    try:
        raw = pd.read_csv(
            path,
            header=None,
            dtype=str,
            keep_default_na=False,
            skipinitialspace=True,
            encoding=encoding,
        )
    except pd.errors.EmptyDataError as e:
        raise DataFormatError(f"빈 파일입니다: {path}", row=1) from e
    except pd.errors.ParserError as e:
        raise DataFormatError(str(e), row=_line_from_parser_error(str(e))) from e
    except UnicodeDecodeError as e:
        raise DataFormatError(
            f"{encoding}로 디코딩할 수 없는 바이트: {e.reason}",
            row=_first_undecodable_line(path, encoding)
        ) from e

    if raw.shape[1] != len(TRIP_SCHEMA):
        raise DataFormatError(
            f"헤더 컬럼 수가 {len(TRIP_SCHEMA)}개여야 합니다: {raw.shape[1]}개",
            row=1
        )
    raw = raw.iloc[1:].reset_index(drop=True)
    raw.columns = list(FIELD_NAMES)

    # 필드가 모자란 행은 NaN으로 채워짐
    short_rows = raw.isna().any(axis=1)
    if short_rows.any():
        first = int(np.flatnonzero(short_rows.to_numpy())[0])
        raise DataFormatError(
            f"컬럼 수가 {len(TRIP_SCHEMA)}개여야 합니다", row=first + 2
        )

    frame = pd.DataFrame(index=raw.index)
    for spec in TRIP_SCHEMA:
        column = raw[spec.name].str.strip()
        if spec.kind == NUMERIC:
            values = pd.to_numeric(column, errors='coerce')
            bad = values.isna().to_numpy()
            if bad.any():
                first = int(np.flatnonzero(bad)[0])
                raise DataFormatError(
                    f"{spec.name} 컬럼에 숫자가 아닌 값: {column.iloc[first]!r}",
                    row=first + 2
                )
            frame[spec.name] = values.astype(np.float64)
        else:
            frame[spec.name] = column

    logger.info("Loaded %d trips from %s", len(frame), path)
    return frame


def records_to_frame(records: Iterable[TripRecord]) -> pd.DataFrame:
    """TripRecord 목록을 스키마 DataFrame으로 변환"""
    rows = [astuple(record) for record in records]
    frame = pd.DataFrame(rows, columns=list(FIELD_NAMES))
    for spec in TRIP_SCHEMA:
        if spec.kind == NUMERIC:
            frame[spec.name] = frame[spec.name].astype(np.float64)
        else:
            frame[spec.name] = frame[spec.name].map(category_text)
    return frame


def frame_to_records(frame: pd.DataFrame) -> List[TripRecord]:
    """스키마 DataFrame을 TripRecord 목록으로 변환"""
    return [
        TripRecord(
            vendor_id=category_text(row.vendor_id),
            rate_code=category_text(row.rate_code),
            passenger_count=float(row.passenger_count),
            trip_time=float(row.trip_time),
            trip_distance=float(row.trip_distance),
            payment_type=category_text(row.payment_type),
            fare_amount=float(row.fare_amount),
        )
        for row in frame[list(FIELD_NAMES)].itertuples(index=False)
    ]


def target_vector(frame: pd.DataFrame) -> np.ndarray:
    """타겟(fare_amount) 벡터"""
    return frame[TARGET_FIELD].to_numpy(dtype=np.float64)
