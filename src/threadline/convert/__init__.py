"""Converters between the canonical form and every supported message shape."""

from threadline.convert.context import ConversionContext, ConversionResult
from threadline.convert.downgrade import gen2_to_gen1, to_gen1, to_gen2
from threadline.convert.external import sanitize, to_external_model_messages, to_external_ui
from threadline.convert.upgrade import UPCONVERTERS, upconvert

__all__ = [
    "ConversionContext",
    "ConversionResult",
    "UPCONVERTERS",
    "upconvert",
    "to_gen2",
    "gen2_to_gen1",
    "to_gen1",
    "sanitize",
    "to_external_model_messages",
    "to_external_ui",
]
