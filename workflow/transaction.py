from __future__ import annotations

from contextlib import contextmanager

from extensions import db


@contextmanager
def atomic():
    """Commit the session once the block finishes; roll back on any error.

    Workflow operations make all their writes inside one ``atomic()`` block so
    a failure never leaves half of a multi-row change behind.
    """
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
