from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class OptionSpec:
    name: str
    default: str
    description: str


def cache_directory(*parts: str) -> str:
    cache_home = os.environ.get("XDG_CACHE_HOME") or str(Path.home() / ".cache")
    return str(Path(cache_home, *parts))


def default_options() -> list[OptionSpec]:
    """Options act understands, used when the binary cannot list its own."""
    return [
        OptionSpec(
            "action-cache-path",
            cache_directory("act"),
            "Path where actions get cached and host workspaces are created.",
        ),
        OptionSpec(
            "action-offline-mode",
            "false",
            "Do not fetch and pull actions that are already cached; turns off force pull.",
        ),
        OptionSpec("actor", "nektos/act", "User that triggered the event."),
        OptionSpec("artifact-server-addr", "", "Address the artifact server binds to."),
        OptionSpec(
            "artifact-server-path",
            "",
            "Where the artifact server stores uploads. The server does not start when unset.",
        ),
        OptionSpec("artifact-server-port", "34567", "Port the artifact server listens on."),
        OptionSpec("bind", "false", "Bind working directory to container, rather than copy."),
        OptionSpec("cache-server-addr", "", "Address the cache server binds to."),
        OptionSpec(
            "cache-server-path",
            cache_directory("actcache"),
            "Where the cache server stores caches.",
        ),
        OptionSpec(
            "cache-server-port", "0", "Port the cache server listens on. 0 picks a free port."
        ),
        OptionSpec(
            "container-architecture",
            "",
            "Architecture used to run containers, e.g. linux/amd64.",
        ),
        OptionSpec("container-cap-add", "", "Kernel capabilities to add to job containers."),
        OptionSpec("container-cap-drop", "", "Kernel capabilities to remove from job containers."),
        OptionSpec(
            "container-daemon-socket",
            "",
            "URI of the container engine socket, or - to disable bind mounting it.",
        ),
        OptionSpec(
            "container-options", "", "Container options for jobs without an options property."
        ),
        OptionSpec("defaultbranch", "", "Name of the main branch."),
        OptionSpec(
            "detect-event", "false", "Use the first event type of the workflow as the trigger."
        ),
        OptionSpec("directory", ".", "Working directory used when running act."),
        OptionSpec(
            "dryrun", "false", "Disable container creation and only validate the workflow."
        ),
        OptionSpec(
            "github-instance", "github.com", "GitHub instance, for GitHub Enterprise Server."
        ),
        OptionSpec("insecure-secrets", "false", "Show secrets while printing logs."),
        OptionSpec(
            "local-repository", "", "Replace a repository and ref with a local folder."
        ),
        OptionSpec(
            "log-prefix-job-id",
            "false",
            "Prefix non-json logs with the job id instead of its name.",
        ),
        OptionSpec("network", "host", "Container network name."),
        OptionSpec("no-cache-server", "false", "Disable the cache server."),
        OptionSpec(
            "no-recurse", "false", "Do not run workflows from subdirectories of --workflows."
        ),
        OptionSpec("no-skip-checkout", "false", "Do not skip actions/checkout."),
        OptionSpec("privileged", "false", "Use privileged mode."),
        OptionSpec("pull", "true", "Pull container images even if already present."),
        OptionSpec("quiet", "false", "Disable logging of step output."),
        OptionSpec("rebuild", "true", "Rebuild local action images even if already present."),
        OptionSpec("remote-name", "origin", "Git remote used to retrieve the repository URL."),
        OptionSpec(
            "replace-ghe-action-token-with-github-com",
            "",
            "Token for private github.com actions used from GitHub Enterprise Server.",
        ),
        OptionSpec(
            "replace-ghe-action-with-github-com",
            "",
            "Actions allowed from github.com when using GitHub Enterprise Server.",
        ),
        OptionSpec(
            "reuse", "false", "Keep containers after successful runs to maintain state."
        ),
        OptionSpec("rm", "false", "Remove containers and volumes after a failed run."),
        OptionSpec(
            "use-gitignore", "true", "Skip paths listed in .gitignore when copying to containers."
        ),
        OptionSpec(
            "use-new-action-cache", "false", "Use the new action cache for storing actions."
        ),
        OptionSpec("userns", "", "User namespace to use."),
        OptionSpec("verbose", "false", "Verbose output."),
    ]


def find_option_spec(name: str, specs: list[OptionSpec] | None = None) -> OptionSpec | None:
    normalized = name.lstrip("-")
    for spec in specs if specs is not None else default_options():
        if spec.name == normalized:
            return spec
    return None
