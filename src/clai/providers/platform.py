"""Platform capability detection for hardware-gated providers."""

import platform
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class PlatformInfo:
    is_macos: bool
    is_linux: bool
    is_apple_silicon: bool
    macos_version: tuple[int, ...] | None = None

    @property
    def supports_mlx(self) -> bool:
        return self.is_macos and self.is_apple_silicon

    @property
    def description(self) -> str:
        if self.is_macos:
            parts = ["macOS"]
            if self.macos_version:
                parts.append(".".join(str(item) for item in self.macos_version[:2]))
            parts.append("(Apple Silicon)" if self.is_apple_silicon else "(Intel)")
            return " ".join(parts)
        if self.is_linux:
            return "Linux"
        return "Unknown platform"


def _parse_version(raw: str) -> tuple[int, ...] | None:
    parts: list[int] = []
    for token in raw.split("."):
        if not token.isdigit():
            break
        parts.append(int(token))
    return tuple(parts) or None


def detect_platform() -> PlatformInfo:
    system = platform.system()
    if system == "Darwin":
        return PlatformInfo(
            is_macos=True,
            is_linux=False,
            is_apple_silicon=platform.machine() == "arm64",
            macos_version=_parse_version(platform.mac_ver()[0]),
        )
    return PlatformInfo(is_macos=False, is_linux=system == "Linux", is_apple_silicon=False)
