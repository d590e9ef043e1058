# config.py - Service configuration for workflow_service
# This file contains configuration settings for the workflow_service.

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Dict

class CapabilityEndpoint(BaseModel):
    name: str
    base_url: str
    health_endpoint: str = "/health"
    timeout: float = 30.0  # seconds

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="WORKFLOW_SERVICE_", env_file=".env")

    # Redis Configuration
    redis_url: str = "redis://localhost:6379/1"
    execution_ttl_seconds: int = 24 * 3600
    events_channel: str = "workflow:events"

    # Service Configuration
    service_name: str = "workflow-service"
    service_port: int = 8002
    log_level: str = "INFO"

    # Capability Services
    video_processor_url: str = "http://video-processor:8002"
    video_processor_timeout: float = 60.0
    transcription_service_url: str = "http://transcription-service:8003"
    transcription_service_timeout: float = 300.0
    llm_service_url: str = "http://llm-service:8005"
    llm_service_timeout: float = 300.0

    # Workflow Configuration
    react_max_iterations: int = 20
    cleanup_interval: int = 60  # seconds

    def capability_endpoints(self) -> Dict[str, CapabilityEndpoint]:
        """Build the fixed map of named capability services."""
        endpoints = [
            CapabilityEndpoint(
                name="video-processor",
                base_url=self.video_processor_url,
                timeout=self.video_processor_timeout,
            ),
            CapabilityEndpoint(
                name="transcription-service",
                base_url=self.transcription_service_url,
                timeout=self.transcription_service_timeout,
            ),
            CapabilityEndpoint(
                name="llm-service",
                base_url=self.llm_service_url,
                timeout=self.llm_service_timeout,
            ),
        ]
        return {endpoint.name: endpoint for endpoint in endpoints}

settings = Settings()
