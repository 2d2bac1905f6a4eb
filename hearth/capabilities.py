"""Capability registry: named callables the model may invoke.

The embedding application builds a CapabilityRegistry before the session
starts. The session only ever sees descriptors and calls ``invoke``.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable

from .report import CapabilityExecutionFailure, InvalidArgument

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Parameter:
    name: str
    description: str
    required: bool = True
    type: str = "string"


@dataclass(frozen=True)
class CapabilityDescriptor:
    name: str
    description: str
    parameters: tuple[Parameter, ...] = ()

    def to_tool(self) -> dict:
        """Render as an OpenAI function-calling tool definition."""
        properties = {
            p.name: {"type": p.type, "description": p.description}
            for p in self.parameters
        }
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": properties,
                    "required": [p.name for p in self.parameters if p.required],
                },
            },
        }


@dataclass(frozen=True)
class Capability:
    descriptor: CapabilityDescriptor
    func: Callable[..., str] = field(repr=False)

    @property
    def name(self) -> str:
        return self.descriptor.name

    def invoke(self, arguments: dict) -> str:
        """Validate ``arguments`` against the descriptor and call the function.

        Raises InvalidArgument for missing required or undeclared arguments,
        and CapabilityExecutionFailure for anything the function raises.
        """
        declared = {p.name for p in self.descriptor.parameters}
        unknown = sorted(set(arguments) - declared)
        if unknown:
            raise InvalidArgument(
                f"{self.name}: unexpected argument(s): {', '.join(unknown)}"
            )
        missing = [
            p.name
            for p in self.descriptor.parameters
            if p.required and p.name not in arguments
        ]
        if missing:
            raise InvalidArgument(
                f"{self.name}: missing required argument(s): {', '.join(missing)}"
            )

        try:
            result = self.func(**arguments)
        except (InvalidArgument, CapabilityExecutionFailure):
            raise
        except Exception as e:
            logger.debug("capability %s raised", self.name, exc_info=True)
            raise CapabilityExecutionFailure(f"{self.name} failed: {e}") from e
        return "" if result is None else str(result)


class CapabilityRegistry:
    """Name -> Capability mapping, fixed once the session starts."""

    def __init__(self):
        self._capabilities: dict[str, Capability] = {}

    def register(
        self,
        name: str,
        description: str,
        func: Callable[..., str],
        parameters: list[Parameter] | tuple[Parameter, ...] = (),
    ) -> CapabilityDescriptor:
        if name in self._capabilities:
            raise ValueError(f"capability {name!r} is already registered")
        descriptor = CapabilityDescriptor(name, description, tuple(parameters))
        self._capabilities[name] = Capability(descriptor, func)
        logger.debug("registered capability %s", name)
        return descriptor

    def lookup(self, name: str) -> Capability | None:
        return self._capabilities.get(name)

    def names(self) -> list[str]:
        return list(self._capabilities)

    def descriptors(self) -> list[CapabilityDescriptor]:
        return [c.descriptor for c in self._capabilities.values()]

    def to_tools(self) -> list[dict]:
        return [d.to_tool() for d in self.descriptors()]

    def __contains__(self, name: str) -> bool:
        return name in self._capabilities

    def __len__(self) -> int:
        return len(self._capabilities)
