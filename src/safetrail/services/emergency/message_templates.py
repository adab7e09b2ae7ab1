"""
Alert message composition

Templates are plain strings with optional placeholders:
{latitude}, {longitude}, {accuracy}, {maps_url}, {timestamp}.
Every rendered message carries the numeric coordinates; if the rendered text
does not show both of them (or the map link), a location line and map link
are appended.
"""

from typing import Dict

from safetrail.models.safety import LocationSample, SOSReport


class _KeepMissing(dict):
    """format_map mapping that leaves unknown placeholders untouched"""

    def __missing__(self, key):
        return '{' + key + '}'


def format_coordinates(location: LocationSample) -> str:
    """Human-readable coordinates, 4 decimal places"""
    return f"{location.latitude:.4f}, {location.longitude:.4f}"


def template_values(location: LocationSample) -> Dict[str, str]:
    return {
        'latitude': f"{location.latitude:.4f}",
        'longitude': f"{location.longitude:.4f}",
        'accuracy': f"{location.accuracy:.0f}",
        'maps_url': location.maps_url(),
        'timestamp': location.captured_at.strftime('%Y-%m-%d %H:%M:%S UTC')
    }


def has_coordinates(message: str, values: Dict[str, str]) -> bool:
    """True if the message shows both coordinates or the map link"""
    if values['maps_url'] in message:
        return True
    return values['latitude'] in message and values['longitude'] in message


def render_message(template: str, location: LocationSample) -> str:
    """
    Render an alert template for a location

    Args:
        template: Message template, may contain placeholders
        location: Location to embed

    Returns:
        The message text
    """
    values = template_values(location)
    try:
        message = template.format_map(_KeepMissing(values))
        rendered = True
    except (ValueError, IndexError, KeyError, AttributeError, TypeError):
        # Stray braces: treat the template as literal text
        message = template
        rendered = False

    if not rendered or not has_coordinates(message, values):
        message = (
            f"{message}\n\n"
            f"Location: {format_coordinates(location)}\n"
            f"{location.maps_url()}"
        )

    return message


def summarize_report(report: SOSReport, test_mode: bool = False) -> str:
    """Summary of a dispatch suitable for showing to the sender"""
    if report.success:
        lines = [f"SOS alert sent to {report.delivered_count} of {len(report.outcomes)} contacts:"]
    else:
        lines = [f"SOS alert could not be delivered to any of {len(report.outcomes)} contacts:"]

    for outcome in report.outcomes:
        status = "sent" if outcome.delivered else f"failed ({outcome.failure_reason})"
        lines.append(f"- {outcome.contact.name}: {outcome.contact.phone} [{status}]")

    lines.append("")
    lines.append(f"Location: {format_coordinates(report.location)}")

    if test_mode:
        lines.append("(Demo mode - no real SMS sent)")

    return "\n".join(lines)
