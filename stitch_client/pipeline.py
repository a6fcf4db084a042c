"""
Pipeline encoding and decoding.

Pipelines travel as extended JSON by default so that ObjectIds, dates and
binary values survive the round trip. Callers may swap in their own
encoder/decoder pair.
"""

from typing import Any, Callable, Iterable, Optional, Tuple

from bson import json_util

from .errors import ConfigurationError
from .types import Stage, stages_to_list


Encoder = Callable[[Any], str]
Decoder = Callable[[str], Any]

METADATA_KEY = "_stitch_metadata"


def default_encoder(value: Any) -> str:
    return json_util.dumps(value)


def default_decoder(text: str) -> Any:
    return json_util.loads(text)


def resolve_codec(
    encoder: Optional[Encoder] = None,
    decoder: Optional[Decoder] = None,
) -> Tuple[Encoder, Decoder]:
    """Validate custom codecs, falling back to extended JSON."""
    if encoder is not None and not callable(encoder):
        raise ConfigurationError(
            f'encoder option must be a function, but "{type(encoder).__name__}" was provided'
        )
    if decoder is not None and not callable(decoder):
        raise ConfigurationError(
            f'decoder option must be a function, but "{type(decoder).__name__}" was provided'
        )
    return encoder or default_encoder, decoder or default_decoder


def encode_pipeline(stages: Iterable[Stage], encoder: Encoder) -> str:
    return encoder(stages_to_list(list(stages)))


def decode_pipeline_response(content: bytes, decoder: Decoder) -> Any:
    """Decode a raw pipeline response and hoist warnings into metadata."""
    data = decoder(content.decode("utf-8", errors="replace"))
    if isinstance(data, dict) and "warnings" in data:
        data[METADATA_KEY] = {"warnings": data.pop("warnings")}
    return data
