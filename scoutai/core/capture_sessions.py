"""Time-gap capture sessions used to narrow pairwise comparisons."""
import logging
import uuid
from datetime import datetime, timedelta, timezone

from scoutai.core.models import CaptureSession, Photo

log = logging.getLogger("scoutai.capture_sessions")


def build_capture_sessions(photos: list[Photo], gap_hours: float = 4.0) -> list[CaptureSession]:
    """Group photos into capture sessions.

    Photos are sorted by capture time. A new session starts when the gap
    between consecutive photos exceeds gap_hours. Photos without a capture
    time go into an "Undated" session.
    """
    gap = timedelta(hours=gap_hours)

    dated: list[tuple[datetime, Photo]] = []
    undated: list[Photo] = []
    for photo in photos:
        if photo.captured_at is None:
            undated.append(photo)
        else:
            dated.append((datetime.fromtimestamp(photo.captured_at, tz=timezone.utc), photo))

    dated.sort(key=lambda x: (x[0], x[1].id))

    sessions: list[CaptureSession] = []
    if dated:
        start = dated[0][0]
        members = [dated[0][1].id]
        for i in range(1, len(dated)):
            dt, photo = dated[i]
            prev_dt = dated[i - 1][0]
            if dt - prev_dt > gap:
                sessions.append(_make_session(len(sessions) + 1, start, prev_dt, members))
                start = dt
                members = []
            members.append(photo.id)
        sessions.append(_make_session(len(sessions) + 1, start, dated[-1][0], members))

    if undated:
        sessions.append(CaptureSession(
            id=uuid.uuid4().hex[:12],
            label="Undated",
            photo_ids=[p.id for p in undated],
        ))

    log.info("Built %d capture sessions (%d dated, %d undated photos)",
             len(sessions), len(dated), len(undated))
    return sessions


def session_index(sessions: list[CaptureSession]) -> dict[str, str]:
    """Map photo id -> session id."""
    return {pid: s.id for s in sessions for pid in s.photo_ids}


def _make_session(index: int, start: datetime, end: datetime, photo_ids: list[str]) -> CaptureSession:
    label = f"Session {index}: {start.strftime('%b %d, %Y %H:%M')}"
    if start.date() != end.date():
        label = f"Session {index}: {start.strftime('%b %d')} to {end.strftime('%b %d, %Y')}"
    return CaptureSession(
        id=uuid.uuid4().hex[:12],
        label=label,
        start=start,
        end=end,
        photo_ids=list(photo_ids),
    )
