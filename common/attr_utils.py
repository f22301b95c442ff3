from typing import Optional, Tuple

import numpy as np

from common.custom_types import AttrsConverterFunc, AttrsValidatorFunc, NpArrf64


class AttrsConverters:
    @classmethod
    def np_f64_converter(
        cls,
        precision: Optional[int] = None,
    ) -> AttrsConverterFunc:
        def _np_array_converter(value) -> NpArrf64:
            np_value = np.array(value, dtype=np.float64)
            if precision is not None:
                np_value = np_value.round(precision)
            return np_value

        return _np_array_converter

    @classmethod
    def optional_np_f64_converter(
        cls,
    ) -> AttrsConverterFunc:
        def _optional_np_array_converter(value) -> Optional[NpArrf64]:
            if value is None:
                return None
            return np.array(value, dtype=np.float64)

        return _optional_np_array_converter


class AttrsValidators:
    @classmethod
    def positive_validator(
        cls,
    ) -> AttrsValidatorFunc:
        def _positive_validator(instance, attribute, value) -> None:
            del instance, attribute  # Cleaner to do this for type checking.
            assert value > 0.0

        return _positive_validator

    @classmethod
    def min_value_validator(
        cls,
        min_value: float,
    ) -> AttrsValidatorFunc:
        def _min_value_validator(instance, attribute, value) -> None:
            del instance, attribute
            assert value >= min_value

        return _min_value_validator

    @classmethod
    def shape_validator(
        cls,
        shape: Tuple[int, ...],
    ) -> AttrsValidatorFunc:
        """
        Validates the numpy shape of the attribute.
        -1 in the shape matches any size along that axis.
        """

        def _shape_validator(instance, attribute, value) -> None:
            del instance, attribute
            assert value.ndim == len(shape)
            for size, expected_size in zip(value.shape, shape):
                assert expected_size == -1 or size == expected_size

        return _shape_validator

    @classmethod
    def square_matrix_validator(
        cls,
    ) -> AttrsValidatorFunc:
        def _square_matrix_validator(instance, attribute, value) -> None:
            del instance, attribute
            assert value.ndim == 2
            assert value.shape[0] == value.shape[1]

        return _square_matrix_validator
