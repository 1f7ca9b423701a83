"""toolcall-repair — recover tool calls from noisy LLM output."""

__version__ = "1.0.0"

from .exceptions import (
    ConfigError,
    SchemaError,
    ToolcallRepairError,
    UnknownToolError,
)
from .models import (
    CandidateBlock,
    ParsedToolCall,
    ParseFailure,
    RepairAttemptResult,
    StreamParseResult,
    ToolCallStatus,
)
from .parser import StreamParser, StreamSession

__all__ = [
    "__version__",
    "ToolcallRepairError",
    "ConfigError",
    "SchemaError",
    "UnknownToolError",
    "CandidateBlock",
    "ParsedToolCall",
    "ParseFailure",
    "RepairAttemptResult",
    "StreamParseResult",
    "ToolCallStatus",
    "StreamParser",
    "StreamSession",
]
