"""
KiraPilot Formatter Module - Tool result presentation

Usage:
    from kirapilot.formatter import ToolResultFormatter, FormattingOptions

    formatter = ToolResultFormatter(FormattingOptions(max_preview_items=5))
    message = formatter.format_result(result)
    observation = formatter.format_observation(result)
"""

from .result_formatter import FormattingOptions, ToolResultFormatter

__all__ = [
    "FormattingOptions",
    "ToolResultFormatter",
]
