"""FastAPI routes for short video jobs."""

from fastapi import APIRouter, HTTPException, Request, Response

from app.core.logging_config import get_logger
from app.models.schemas import CreateShortRequest, CreateShortResponse, JobStatusResponse
from app.services.job_queue import JobQueue
from app.services.music_library import MusicLibrary
from app.utils.error_handler import JobBusyError, JobNotFoundError, JobNotReadyError

router = APIRouter(prefix="/api", tags=["short-video"])


def get_job_queue(request: Request) -> JobQueue:
    return request.app.state.job_queue


def get_music_library(request: Request) -> MusicLibrary:
    return request.app.state.music_library


@router.post("/short-video", response_model=CreateShortResponse, response_model_by_alias=True)
async def create_short_video(body: CreateShortRequest, request: Request) -> CreateShortResponse:
    """
    Queue a short video.

    Returns immediately with the job id; poll the status endpoint or pass a
    callbackUrl to be notified.
    """
    logger = get_logger(__name__)
    job_queue = get_job_queue(request)

    job_id = job_queue.enqueue(
        body.scenes,
        body.config,
        callback_url=body.callback_url,
        metadata=body.metadata,
    )
    logger.info(f"Accepted job {job_id} with {len(body.scenes)} scenes")
    return CreateShortResponse(video_id=job_id)


@router.get("/short-video/{video_id}/status", response_model=JobStatusResponse, response_model_by_alias=True)
async def get_short_video_status(video_id: str, request: Request) -> JobStatusResponse:
    """Get the lifecycle status of a job."""
    try:
        status = get_job_queue(request).status(video_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail=f"Video not found: {video_id}")
    return JobStatusResponse(video_id=video_id, status=status)


@router.get("/short-video/{video_id}/details")
async def get_short_video_details(video_id: str, request: Request) -> dict:
    """Detailed status: mode, timestamps, file size, and failure details."""
    try:
        return get_job_queue(request).detailed_status(video_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail=f"Video not found: {video_id}")


@router.get("/short-video/{video_id}")
def get_short_video(video_id: str, request: Request) -> Response:
    """Download a finished video."""
    try:
        content = get_job_queue(request).get_artifact(video_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail=f"Video not found: {video_id}")
    except JobNotReadyError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return Response(
        content=content,
        media_type="video/mp4",
        headers={"Content-Disposition": f'inline; filename="{video_id}.mp4"'},
    )


@router.delete("/short-video/{video_id}")
def delete_short_video(video_id: str, request: Request) -> dict:
    """Delete a finished or failed video."""
    logger = get_logger(__name__, job_id=video_id)
    try:
        get_job_queue(request).delete(video_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail=f"Video not found: {video_id}")
    except JobBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))

    logger.info("Video deleted via API")
    return {"success": True}


@router.get("/short-videos")
async def list_short_videos(request: Request) -> dict:
    """List every known job and its status."""
    return {"videos": get_job_queue(request).list_jobs()}


@router.get("/queue")
async def get_queue_status(request: Request) -> dict:
    """Pending count and the job currently rendering."""
    return get_job_queue(request).queue_status()


@router.get("/music-tags")
async def list_music_tags(request: Request) -> list[str]:
    """Mood tags that have background music available."""
    return get_music_library(request).list_tags()
