# builtin_workflows.py - Workflow definitions registered at startup

from .models import BackoffStrategy, RetryPolicy, WorkflowDefinition, WorkflowStep

MEDIA_TRANSCRIPTION_WORKFLOW_ID = "media-transcription"

def create_media_transcription_workflow() -> WorkflowDefinition:
    """prepare media -> transcribe -> enhance, wired through dotted-path mappings."""
    return WorkflowDefinition(
        id=MEDIA_TRANSCRIPTION_WORKFLOW_ID,
        name="Media Transcription",
        description="Download media, transcribe the audio and enhance the text",
        steps=[
            WorkflowStep(
                id="prepare_media",
                name="Prepare media",
                service="video-processor",
                endpoint="/api/video/process",
                timeout=600,
                input_mapping={"url": "source_url"},
            ),
            WorkflowStep(
                id="transcribe",
                name="Transcribe audio",
                service="transcription-service",
                endpoint="/api/transcription/transcribe",
                timeout=900,
                dependencies=["prepare_media"],
                input_mapping={"mediaFile": "prepare_media.mediaFile"},
            ),
            WorkflowStep(
                id="enhance",
                name="Enhance text",
                service="llm-service",
                endpoint="/api/llm/enhance",
                timeout=300,
                dependencies=["transcribe"],
                input_mapping={"text": "transcribe.text"},
                output_mapping={"summary": "summary", "keywords": "keywords"},
            ),
        ],
        timeout=1800,
        retry_policy=RetryPolicy(max_retries=2, backoff_strategy=BackoffStrategy.EXPONENTIAL, base_delay=2.0),
    )

BUILTIN_WORKFLOWS = [create_media_transcription_workflow]
