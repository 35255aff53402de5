from datetime import datetime, timezone


def _now_ts_str() -> str:
    return datetime.now(timezone.utc).strftime("%Y_%m_%d_%H%M%S")
