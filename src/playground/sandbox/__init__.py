"""Sandbox lifecycle: resolve, provision, link, launch, restart and promote."""

from playground.sandbox.errors import (
    MissingRepoReference,
    PreconditionFailure,
    ProvisionFailure,
    RecognitionFailure,
    SandboxError,
)
from playground.sandbox.launcher import ProcessLauncher, SandboxProcess, supports_windowed_child
from playground.sandbox.lifecycle import (
    Installed,
    Preset,
    RawReference,
    RepoDescriptor,
    SandboxLifecycle,
    Selection,
    resolve_selection,
)
from playground.sandbox.linker import ContentLinker
from playground.sandbox.promoter import PromotedScripts, Promoter
from playground.sandbox.provisioner import CloneOptions, Provisioner
from playground.sandbox.session import RecordedProcess, Session, SessionStateFile, channel_name
from playground.sandbox.store import SandboxStore, validate_name

__all__ = [
    "CloneOptions",
    "ContentLinker",
    "Installed",
    "MissingRepoReference",
    "PreconditionFailure",
    "Preset",
    "ProcessLauncher",
    "PromotedScripts",
    "Promoter",
    "ProvisionFailure",
    "Provisioner",
    "RawReference",
    "RecognitionFailure",
    "RecordedProcess",
    "RepoDescriptor",
    "SandboxError",
    "SandboxLifecycle",
    "SandboxProcess",
    "SandboxStore",
    "Selection",
    "Session",
    "SessionStateFile",
    "channel_name",
    "resolve_selection",
    "supports_windowed_child",
    "validate_name",
]
