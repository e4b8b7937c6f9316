"""Best-effort removal of the remote job once the artifact is on disk."""

from __future__ import annotations

import logging
from typing import Optional

from services.sora_client import SoraClient

logger = logging.getLogger("vgen.cleanup")


def cleanup_job(client: SoraClient, video_id: str) -> Optional[str]:
    """Delete the remote job. Returns a warning message instead of raising."""
    try:
        client.delete_video(video_id)
    except Exception as e:
        warning = f"failed to delete video from service: {e}"
        logger.warning("Job %s: %s", video_id, warning)
        return warning
    logger.info("Video %s deleted from service", video_id)
    return None


def purge_videos(client: SoraClient, video_ids: list[str]) -> tuple[int, list[str]]:
    """Delete several remote jobs, continuing past failures. Returns (deleted, warnings)."""
    deleted = 0
    warnings: list[str] = []
    for video_id in video_ids:
        warning = cleanup_job(client, video_id)
        if warning:
            warnings.append(f"{video_id}: {warning}")
        else:
            deleted += 1
    return deleted, warnings
