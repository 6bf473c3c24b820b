"""
Provisioning configuration — what to install and where.

Loaded from defaults, an optional ``devbox.yml`` and environment
variables (see ``devbox.core.config.loader``). Paths are stored as
written (``~`` allowed) and resolved against ``home`` on use, so the
same config renders both real paths and ``$HOME``-relative profile lines.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, SecretStr

DEFAULT_APT_PACKAGES = [
    "build-essential", "curl", "git", "ca-certificates", "gnupg", "xclip",
    "libssl-dev", "zlib1g-dev", "libbz2-dev", "libreadline-dev", "libsqlite3-dev",
    "libncursesw5-dev", "xz-utils", "tk-dev", "libxml2-dev", "libxmlsec1-dev",
    "libffi-dev", "liblzma-dev",
]

DEFAULT_R_PACKAGES = [
    "languageserver", "dplyr", "data.table", "optparse",
    "jsonlite", "clipr", "bit64", "httpgd",
]


class VendorSettings(BaseModel):
    """The vendor CLI and the ``env`` block written to its settings file."""

    command: str = "claude"
    installer_url: str = "https://claude.ai/install.sh"
    force_latest: bool = False
    settings_path: str = "~/.claude/settings.json"

    region: str = ""
    token: SecretStr = SecretStr("")
    max_output_tokens: str = "4096"
    max_thinking_tokens: str = "1024"

    # Optional pins for regions that need explicit inference profiles
    model: str = ""
    small_fast_model: str = ""

    def env_payload(self) -> dict[str, str]:
        """The key/value pairs merged into the settings file's ``env``."""
        payload = {
            "CLAUDE_CODE_USE_BEDROCK": "1",
            "AWS_REGION": self.region,
            "AWS_BEARER_TOKEN_BEDROCK": self.token.get_secret_value(),
            "CLAUDE_CODE_MAX_OUTPUT_TOKENS": self.max_output_tokens,
            "MAX_THINKING_TOKENS": self.max_thinking_tokens,
        }
        if self.model:
            payload["ANTHROPIC_MODEL"] = self.model
        if self.small_fast_model:
            payload["ANTHROPIC_SMALL_FAST_MODEL"] = self.small_fast_model
        return payload

    @property
    def has_credentials(self) -> bool:
        return bool(self.region and self.token.get_secret_value())


class ProvisionConfig(BaseModel):
    """Root provisioning config."""

    home: str = Field(default_factory=lambda: str(Path.home()))
    log_file: str = "~/bootstrap.log"

    # ── System ────────────────────────────────────────────────────
    apt_packages: list[str] = Field(default_factory=lambda: list(DEFAULT_APT_PACKAGES))

    # ── R ─────────────────────────────────────────────────────────
    r_packages: list[str] = Field(default_factory=lambda: list(DEFAULT_R_PACKAGES))
    cran_mirror: str = "https://cloud.r-project.org"
    editor_extensions: list[str] = Field(default_factory=lambda: ["REditorSupport.r"])

    # ── Python ────────────────────────────────────────────────────
    pyenv_root: str = "~/.pyenv"
    pyenv_installer_url: str = "https://pyenv.run"
    python_version: str = "3.12.12"
    poetry_version: str = "1.8.5"
    poetry_installer_url: str = "https://install.python-poetry.org"
    projects: list[str] = Field(
        default_factory=lambda: ["/workspace/scratch", "/workspace/app"],
    )
    project_manifest: str = "pyproject.toml"

    # ── Node ──────────────────────────────────────────────────────
    nodesource_url: str = "https://deb.nodesource.com/setup_lts.x"
    npm_globals: list[str] = Field(default_factory=lambda: ["npm@latest", "@github/copilot"])

    # ── Shell ─────────────────────────────────────────────────────
    profiles: list[str] = Field(default_factory=lambda: ["~/.bashrc", "~/.zshrc"])
    login_profile: str = "~/.profile"
    local_bin: str = "~/.local/bin"

    vendor: VendorSettings = Field(default_factory=VendorSettings)

    # ── Path helpers ──────────────────────────────────────────────

    def resolve(self, value: str) -> Path:
        """Expand a leading ``~`` or ``$HOME`` against ``home``."""
        for prefix in ("~/", "$HOME/"):
            if value.startswith(prefix):
                return Path(self.home) / value[len(prefix):]
        if value in ("~", "$HOME"):
            return Path(self.home)
        return Path(value)

    def shell_path(self, value: str) -> str:
        """Render a path for a profile line, ``$HOME``-relative when possible."""
        resolved = self.resolve(value)
        try:
            rel = resolved.relative_to(self.home)
        except ValueError:
            return str(resolved)
        return "$HOME" if str(rel) == "." else f"$HOME/{rel}"

    @property
    def pyenv_root_path(self) -> Path:
        return self.resolve(self.pyenv_root)

    @property
    def pyenv_python(self) -> Path:
        """The pinned interpreter binary pyenv installs."""
        return self.pyenv_root_path / "versions" / self.python_version / "bin" / "python"

    @property
    def local_bin_path(self) -> Path:
        return self.resolve(self.local_bin)

    @property
    def profile_paths(self) -> list[Path]:
        return [self.resolve(p) for p in self.profiles]

    @property
    def log_path(self) -> Path:
        return self.resolve(self.log_file)

    @property
    def settings_path(self) -> Path:
        return self.resolve(self.vendor.settings_path)
