"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pydantic import BaseModel, Field, field_validator, model_validator

# Containers that accept H.264 video from ffmpeg without extra flags
SUPPORTED_CONTAINERS = ("mkv", "mov", "mp4", "ts")

CPU_VIDEO_CODEC = "libx264"
GPU_VIDEO_CODEC = "h264_nvenc"


class AppConfig(BaseModel):
    """A validated configuration model for the application."""

    # Queue Settings
    max_concurrency: int = 4
    output_directory: str = ""
    naming_pattern: str = ""

    # Conversion Settings
    ffmpeg_path: str = "ffmpeg"
    use_gpu: bool = False
    video_codec: str = ""
    container: str = "mp4"

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("max_concurrency")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        """Ensures a reasonable number of simultaneous conversions."""
        if v < 1 or v > 32:
            raise ValueError("Max concurrency must be between 1 and 32.")
        return v

    @field_validator("container")
    @classmethod
    def validate_container(cls, v: str) -> str:
        v = v.lower().lstrip(".")
        if v not in SUPPORTED_CONTAINERS:
            raise ValueError(
                f"Container must be one of: {', '.join(SUPPORTED_CONTAINERS)}."
            )
        return v

    @field_validator("ffmpeg_path")
    @classmethod
    def validate_ffmpeg_path(cls, v: str) -> str:
        if not v:
            raise ValueError("ffmpeg_path cannot be empty.")
        return v

    @model_validator(mode="after")
    def validate_codec_conflicts(self) -> "AppConfig":
        """Checks for conflicting encoder options."""
        if self.video_codec and self.use_gpu and self.video_codec != GPU_VIDEO_CODEC:
            raise ValueError(
                f"Cannot combine use_gpu with an explicit video_codec "
                f"'{self.video_codec}'."
            )
        return self

    @property
    def effective_video_codec(self) -> str:
        if self.video_codec:
            return self.video_codec
        return GPU_VIDEO_CODEC if self.use_gpu else CPU_VIDEO_CODEC

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
