from relay.tools.gemini_relay import GeminiRelay, RelayError, build_relay
from relay.tools.line_push import LinePushNotifier, build_notifier

__all__ = ["GeminiRelay", "RelayError", "build_relay", "LinePushNotifier", "build_notifier"]
