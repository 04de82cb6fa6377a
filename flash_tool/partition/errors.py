# partition/errors.py
"""Ошибки движка разметки.

Все операции планирования, проверки, сериализации и импорта сообщают
о проблемах исключениями из этого модуля. Ни одна из них не «фатальна»
для процесса: вызывающий код решает сам: отменить запись образа,
откатиться к разметке только с factory и т.п.
"""

from __future__ import annotations


class PartitionError(Exception):
    """Базовая ошибка разметки флеша."""


class InvalidArgument(PartitionError, ValueError):
    """Пустой/некорректный ввод вызывающего кода."""


class InsufficientSpace(PartitionError):
    """Не хватает ёмкости флеша (строгий режим)."""

    def __init__(self, msg: str, required: int = 0, available: int = 0):
        super().__init__(msg)
        self.required = required
        self.available = available


class TooManyPartitions(PartitionError):
    """Число записей превышает размер таблицы."""


class ValidationError(PartitionError):
    """Разметка не прошла проверку."""


class OutOfBounds(ValidationError):
    pass


class OverlapDetected(ValidationError):
    def __init__(self, msg: str, first: str = "", second: str = ""):
        super().__init__(msg)
        self.first = first
        self.second = second


class ChecksumMismatch(PartitionError):
    """MD5 таблицы не совпал (или запись контрольной суммы отсутствует)."""


class FlashIOError(PartitionError):
    """Ошибка блочного устройства (оригинал в __cause__)."""


class AlignmentWarning(UserWarning):
    """Невыровненное смещение: пишется в лог, проверку не валит."""

    def __init__(self, msg: str, region: str = "", offset: int = 0, alignment: int = 0):
        super().__init__(msg)
        self.region = region
        self.offset = offset
        self.alignment = alignment
