"""Signature policy contexts for image transfers.

The transfer engine only copies images when handed a policy context. A
context is acquired at the start of a provider call and released on every
exit path; see ``policy_scope``.
"""

import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Protocol

from pydantic import BaseModel, Field, ValidationError, model_validator

from .constants import DEFAULT_POLICY_PATH
from .errors import PolicyContextError
from .transfer import SystemContext

logger = logging.getLogger(__name__)


class PolicyRequirement(BaseModel):
    """A single policy requirement, e.g. {"type": "insecureAcceptAnything"}."""
    type: str
    keyType: Optional[str] = None
    keyPath: Optional[str] = None


class SignaturePolicy(BaseModel):
    """
    containers-policy.json document.

    ``default`` applies to every transport/scope not listed under ``transports``.
    """
    default: List[PolicyRequirement] = Field(default_factory=list)
    transports: Dict[str, Dict[str, List[PolicyRequirement]]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_default(self):
        """A policy without a default requirement rejects nothing and is refused."""
        if not self.default:
            raise ValueError("policy must define at least one default requirement")
        return self

    @classmethod
    def accept_anything(cls) -> "SignaturePolicy":
        return cls(default=[PolicyRequirement(type="insecureAcceptAnything")])

    def requirements_for(self, transport: str, scope: str = "") -> List[PolicyRequirement]:
        """Requirements for a transport/scope, falling back to the default."""
        scopes = self.transports.get(transport, {})
        if scope in scopes:
            return scopes[scope]
        if "" in scopes:
            return scopes[""]
        return self.default


class PolicyContext:
    """Acquired policy; must be released exactly once."""

    def __init__(self, policy: SignaturePolicy):
        self.policy = policy
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            raise PolicyContextError("policy context already released")
        self._released = True


class PolicyContextProvider(Protocol):
    """Source of policy contexts."""

    def acquire(self, system_context: SystemContext) -> PolicyContext:
        ...


class FilePolicyProvider:
    """Loads the policy from ``system_context.signature_policy_path``.

    Falls back to /etc/containers/policy.json. When no file exists an
    accept-anything policy is used only if the system context is insecure.
    """

    def __init__(self, default_path: str = DEFAULT_POLICY_PATH):
        self.default_path = default_path

    def acquire(self, system_context: SystemContext) -> PolicyContext:
        path = Path(system_context.signature_policy_path or self.default_path)
        if not path.exists():
            if system_context.insecure:
                logger.debug("No policy at %s, accepting anything (insecure)", path)
                return PolicyContext(SignaturePolicy.accept_anything())
            raise FileNotFoundError(f"Signature policy not found: {path}")

        try:
            policy = SignaturePolicy.model_validate(json.loads(path.read_text()))
        except (json.JSONDecodeError, ValidationError) as e:
            raise ValueError(f"Invalid signature policy {path}: {e}") from e
        return PolicyContext(policy)


def _release_into(policy_context: PolicyContext, exc: BaseException) -> None:
    """Release while exc is in flight; attach any release failure to exc."""
    try:
        policy_context.release()
    except Exception as release_exc:
        logger.debug("Policy context release failed during error handling: %s", release_exc)
        exc.add_note(f"additionally, releasing the policy context failed: {release_exc}")
        errors = getattr(exc, "release_errors", None)
        if errors is None:
            errors = []
            try:
                exc.release_errors = errors
            except AttributeError:
                return
        errors.append(release_exc)


@contextmanager
def policy_scope(
    provider: PolicyContextProvider,
    system_context: SystemContext,
    key: Optional[str] = None,
    backend: Optional[str] = None,
) -> Iterator[PolicyContext]:
    """Acquire a policy context for the duration of a block.

    The context is released on every exit path. A release failure never
    replaces an error raised inside the block: it is attached to that error
    (as a note and on ``release_errors``). If the block succeeded, the
    release failure is raised as PolicyContextError.
    """
    try:
        policy_context = provider.acquire(system_context)
    except Exception as e:
        raise PolicyContextError(f"failed to acquire policy context: {e}",
                                 key=key, backend=backend) from e

    try:
        yield policy_context
    except BaseException as exc:
        _release_into(policy_context, exc)
        raise

    try:
        policy_context.release()
    except Exception as e:
        raise PolicyContextError(f"failed to release policy context: {e}",
                                 key=key, backend=backend) from e
