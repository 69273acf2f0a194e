"""AI response parsing."""

from tradegen.parsing.response import ParseContext, ParseResult, ResponseParser, extract_json_array

__all__ = ["ParseContext", "ParseResult", "ResponseParser", "extract_json_array"]
