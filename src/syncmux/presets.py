"""Platform encoding presets."""

from enum import Enum
from typing import Optional

from .errors import InvalidPlatformError
from .models import AudioSettings, PlatformPreset, VideoSettings


class Platform(str, Enum):
    """Supported upload platforms."""

    YOUTUBE = "youtube"
    NICONICO = "niconico"
    BILIBILI = "bilibili"


# Used only when the caller omits the platform entirely
DEFAULT_PLATFORM = Platform.YOUTUBE

PLATFORM_PRESETS: dict[Platform, PlatformPreset] = {
    Platform.YOUTUBE: PlatformPreset(
        name=Platform.YOUTUBE.value,
        video=VideoSettings(
            preset="slow",
            profile="high",
            crf=18,
            bitrate=8000,
            maxrate=16000,
            bufsize=32000,
        ),
        audio=AudioSettings(bitrate=384),
    ),
    Platform.NICONICO: PlatformPreset(
        name=Platform.NICONICO.value,
        video=VideoSettings(
            preset="medium",
            profile="high",
            crf=23,
            bitrate=3000,
            maxrate=4000,
            bufsize=8000,
        ),
        audio=AudioSettings(bitrate=192),
    ),
    Platform.BILIBILI: PlatformPreset(
        name=Platform.BILIBILI.value,
        video=VideoSettings(
            preset="slow",
            profile="high",
            crf=18,
            bitrate=8000,
            maxrate=16000,
            bufsize=32000,
        ),
        audio=AudioSettings(bitrate=320),
    ),
}


def get_preset(platform: Optional[str] = None) -> PlatformPreset:
    """
    Look up the encoder preset for a platform.

    Args:
        platform: Platform identifier, or None to use the default platform.
            An empty or unknown identifier is an error, not a fallback.

    Returns:
        The platform's PlatformPreset

    Raises:
        InvalidPlatformError: If the identifier is not a known platform
    """
    if platform is None:
        return PLATFORM_PRESETS[DEFAULT_PLATFORM]
    try:
        key = Platform(platform)
    except ValueError:
        known = ", ".join(p.value for p in Platform)
        raise InvalidPlatformError(
            "preset", f"Unknown platform {platform!r} (expected one of: {known})"
        ) from None
    return PLATFORM_PRESETS[key]
