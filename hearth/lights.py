"""Smart-home light capabilities."""

from .capabilities import CapabilityRegistry, Parameter


def turn_on_light(location: str) -> str:
    return f"The light in the {location} has been turned ON."


def turn_off_light(location: str) -> str:
    return f"The light in the {location} has been turned OFF."


def get_light_colors(location: str) -> str:
    # Fixed palette; there is no real device behind these.
    return f"The light colors in the {location} are Red, Green, Blue."


def register_lights(registry: CapabilityRegistry) -> CapabilityRegistry:
    """Register the light capabilities on ``registry`` and return it."""
    registry.register(
        "TurnOnLight",
        "Turns on the light in a specific location",
        turn_on_light,
        [Parameter("location", "The location of the light to turn on")],
    )
    registry.register(
        "TurnOffLight",
        "Turns off the light in a specific location",
        turn_off_light,
        [Parameter("location", "The location of the light to turn off")],
    )
    registry.register(
        "GetLightColors",
        "Gets the color of the light in a specific location",
        get_light_colors,
        [Parameter("location", "The location of the light to get colors from")],
    )
    return registry


def build_light_registry() -> CapabilityRegistry:
    return register_lights(CapabilityRegistry())
