"""Configuration files and the credential store.

Usage:
    store = CredentialStore.open(workdir=".", prompt=host.prompt)
    project_id = store.project_id()          # workspace-scoped, prompts on miss
    token = store.access_token()             # global, masked prompt on miss
    generate_template("config.yaml")         # writes example file to disk

Values are looked up in this order: environment variable, the YAML file of
the setting's scope, the setting's default. A miss falls back to an
interactive prompt; a non-empty answer is persisted to the scope's file.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping

import yaml

from sonar_fix import vcs
from sonar_fix.host import PromptSpec

GLOBAL_CONFIG_ENV = "SONAR_FIX_CONFIG"
DEFAULT_GLOBAL_CONFIG = Path("~/.config/sonar-fix/config.yaml")
WORKSPACE_CONFIG_NAME = ".sonar-fix.yaml"

WORKSPACE = "workspace"
GLOBAL    = "global"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ConfigError(Exception):
    """Raised when a configuration file is malformed or cannot be written."""


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Setting:
    path: str                      # dotted path inside the YAML mapping
    scope: str
    env: str | None = None
    secret: bool = False
    prompt: str | None = None
    placeholder: str | None = None
    default: str | None = None


SETTINGS: dict[str, Setting] = {
    "sonar_url": Setting(
        "sonar.url", GLOBAL, env="SONAR_URL", default="https://sonarcloud.io",
    ),
    "project_id": Setting(
        "sonar.project_id", WORKSPACE, env="SONAR_PROJECT_ID",
        prompt="Enter the SonarCloud project id", placeholder="e.g. my-project-api",
    ),
    "access_token": Setting(
        "sonar.token", GLOBAL, env="SONAR_TOKEN", secret=True,
        prompt="Enter your SonarCloud access token",
    ),
    "client_id": Setting(
        "stackspot.client_id", GLOBAL, env="STACKSPOT_CLIENT_ID",
        prompt="Enter the StackSpot client id", placeholder="e.g. your-client-id",
    ),
    "client_secret": Setting(
        "stackspot.client_secret", GLOBAL, env="STACKSPOT_CLIENT_SECRET", secret=True,
        prompt="Enter the StackSpot client secret",
    ),
    "realm": Setting(
        "stackspot.realm", GLOBAL, env="STACKSPOT_REALM", default="zup",
    ),
    "quick_command": Setting(
        "stackspot.quick_command", GLOBAL, env="STACKSPOT_QUICK_COMMAND",
        prompt="Enter the StackSpot quick command slug",
        placeholder="e.g. fix-sonar-issues",
    ),
}


# ---------------------------------------------------------------------------
# YAML file
# ---------------------------------------------------------------------------

class ConfigFile:
    """A YAML mapping on disk addressed with dotted paths."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open(encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse '{self.path}': {exc}") from exc
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ConfigError(f"'{self.path}' must be a YAML mapping at the top level.")
        return raw

    def get(self, dotted: str) -> str | None:
        node: Any = self.load()
        for part in dotted.split("."):
            if not isinstance(node, dict):
                return None
            node = node.get(part)
        if node is None:
            return None
        value = str(node).strip()
        return value or None

    def set(self, dotted: str, value: str) -> None:
        data = self.load()
        node = data
        *parents, leaf = dotted.split(".")
        for part in parents:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[leaf] = value
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        except OSError as exc:
            raise ConfigError(f"Unable to write '{self.path}': {exc}") from exc


def global_config_path(explicit: str | None = None) -> Path:
    if explicit:
        return Path(explicit).expanduser()
    from_env = os.environ.get(GLOBAL_CONFIG_ENV)
    if from_env:
        return Path(from_env).expanduser()
    return DEFAULT_GLOBAL_CONFIG.expanduser()


# ---------------------------------------------------------------------------
# Credential store
# ---------------------------------------------------------------------------

Prompt = Callable[[PromptSpec], "str | None"]


class CredentialStore:
    """Read-through store for project id, tokens and client credentials."""

    def __init__(
        self,
        workspace_file: ConfigFile,
        global_file: ConfigFile,
        prompt: Prompt | None = None,
        environ: Mapping[str, str] | None = None,
        workdir: str | Path = ".",
    ) -> None:
        self._files = {WORKSPACE: workspace_file, GLOBAL: global_file}
        self._prompt = prompt
        self._environ = os.environ if environ is None else environ
        self.workdir = Path(workdir)

    @classmethod
    def open(
        cls,
        workdir: str | Path = ".",
        config_path: str | None = None,
        prompt: Prompt | None = None,
    ) -> "CredentialStore":
        return cls(
            workspace_file=ConfigFile(Path(workdir) / WORKSPACE_CONFIG_NAME),
            global_file=ConfigFile(global_config_path(config_path)),
            prompt=prompt,
            workdir=workdir,
        )

    # ------------------------------------------------------------------
    # Generic access
    # ------------------------------------------------------------------

    def get(self, name: str) -> str | None:
        """Return a setting without prompting."""
        setting = SETTINGS[name]
        if setting.env:
            value = (self._environ.get(setting.env) or "").strip()
            if value:
                return value
        value = self._files[setting.scope].get(setting.path)
        return value or setting.default

    def set(self, name: str, value: str) -> None:
        setting = SETTINGS[name]
        self._files[setting.scope].set(setting.path, value)

    def resolve(self, name: str) -> str | None:
        """Return a setting, prompting for it and persisting the answer on miss.

        Returns None when the prompt is cancelled or answered empty.
        """
        value = self.get(name)
        if value:
            return value
        setting = SETTINGS[name]
        if self._prompt is None or setting.prompt is None:
            return None
        answer = self._prompt(PromptSpec(
            message=setting.prompt,
            placeholder=setting.placeholder,
            secret=setting.secret,
        ))
        answer = (answer or "").strip()
        if not answer:
            return None
        self.set(name, answer)
        return answer

    # ------------------------------------------------------------------
    # Named getters
    # ------------------------------------------------------------------

    def project_id(self) -> str | None:
        """Project id: configured value, then the git repository name, then a prompt."""
        value = self.get("project_id")
        if value:
            return value
        name = vcs.repository_name(self.workdir)
        if name:
            return name
        return self.resolve("project_id")

    def access_token(self) -> str | None:
        return self.resolve("access_token")

    def client_id(self) -> str | None:
        return self.resolve("client_id")

    def client_secret(self) -> str | None:
        return self.resolve("client_secret")

    def quick_command(self) -> str | None:
        return self.resolve("quick_command")

    def realm(self) -> str:
        return self.get("realm") or SETTINGS["realm"].default

    def sonar_url(self) -> str:
        return self.get("sonar_url") or SETTINGS["sonar_url"].default


# ---------------------------------------------------------------------------
# Template generator (used by `init` command)
# ---------------------------------------------------------------------------

TEMPLATE = """\
sonar:
  url: "https://sonarcloud.io"
  token: "xxxxxxxxxxxx"           # Generate at: https://sonarcloud.io/account/security

stackspot:
  realm: "zup"
  client_id: "your-client-id"
  client_secret: "your-client-secret"
  quick_command: "fix-sonar-issues"

# The project id is workspace-scoped: put it in .sonar-fix.yaml at the
# repository root, e.g.
#   sonar:
#     project_id: "my-project-api"
"""


def generate_template(output_path: str | Path) -> None:
    """Write a template configuration file to *output_path*.

    Raises:
        ConfigError: if the file already exists (to avoid overwriting secrets).
    """
    path = Path(output_path).expanduser()
    if path.exists():
        raise ConfigError(
            f"'{output_path}' already exists. Remove it first or choose a different path."
        )
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(TEMPLATE, encoding="utf-8")
