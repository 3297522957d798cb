"""
예외 타입 정의
==============

파이프라인 각 단계에서 발생하는 실패를 호출자에게 타입으로 구분해 전달합니다.
"""

from typing import Optional


class DataFormatError(ValueError):
    """데이터셋 행 형식 오류 (컬럼 수 불일치, 숫자 컬럼의 비숫자 값 등)"""

    def __init__(self, message: str, row: Optional[int] = None):
        if row is not None:
            message = f"line {row}: {message}"
        super().__init__(message)
        self.row = row


class ConfigurationError(ValueError):
    """하이퍼파라미터 또는 학습 입력이 유효하지 않음"""


class ModelLoadError(RuntimeError):
    """모델 아티팩트가 없거나 손상됨"""
