"""
libSQL SDK Protocol Module.

Implements the Hrana-over-HTTP pipeline protocol and its value codec.
"""

from .hrana import (
    PIPELINE_PATH,
    And,
    BatchStep,
    IsError,
    IsOk,
    Not,
    Or,
    PipelineRequest,
    PipelineResponse,
    ProtocolError,
    Statement,
    StepCondition,
)
from .values import Value, ValueKind, decode_base64, decode_value, encode_value

__all__ = [
    # Pipeline
    "PIPELINE_PATH",
    "PipelineRequest",
    "PipelineResponse",
    "ProtocolError",
    "Statement",
    # Batch conditions
    "And",
    "BatchStep",
    "IsError",
    "IsOk",
    "Not",
    "Or",
    "StepCondition",
    # Values
    "Value",
    "ValueKind",
    "decode_base64",
    "decode_value",
    "encode_value",
]
