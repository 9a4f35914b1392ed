from __future__ import annotations
import re, time, uuid

_UUID_RX = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.I)


def new_session_id() -> str:
    return f"fd-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}-{uuid.uuid4().hex[:9]}"


def new_submission_id() -> str:
    return str(uuid.uuid4())


def is_uuid(value: str) -> bool:
    return isinstance(value, str) and bool(_UUID_RX.match(value))
