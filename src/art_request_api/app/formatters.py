"""Turn a request payload into the shapes Drive and Asana expect."""

from __future__ import annotations

import html
import re
from datetime import date

from .models import Product, RequestPayload, WebsiteLink
from .settings import Settings

_INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_BREAK_TAG = re.compile(r"<br\s*/?>", re.IGNORECASE)
_PARAGRAPH_END = re.compile(r"</p>", re.IGNORECASE)
_ANY_TAG = re.compile(r"<[^>]+>")
MAX_FILENAME_LENGTH = 255


def generate_folder_name(payload: RequestPayload, *, today: date | None = None) -> str:
    """Folder name format: "YYYY-MM-DD - Client Name - Request Title"."""
    day = (today or date.today()).isoformat()
    client = payload.client_name or "Unknown Client"
    title = payload.request_title or "Untitled Request"
    return f"{day} - {client} - {title}"


def parent_folder_for_client(client_name: str | None, settings: Settings) -> str:
    """A-L clients go to one shared drive, M-Z to the other.

    Empty names, digits and punctuation all fall back to the A-L drive.
    """
    first = (client_name or "").strip()[:1].upper()
    if "M" <= first <= "Z":
        return settings.google_drive_mz_shared_drive_id
    return settings.google_drive_al_shared_drive_id


def sanitize_filename(filename: str) -> str:
    return _INVALID_FILENAME_CHARS.sub("_", filename)[:MAX_FILENAME_LENGTH]


def strip_html(value: str) -> str:
    text = _BREAK_TAG.sub("\n", value)
    text = _PARAGRAPH_END.sub("\n\n", text)
    return _ANY_TAG.sub("", text).strip()


def format_products(products: list[Product]) -> str:
    blocks: list[str] = []
    for index, product in enumerate(products, start=1):
        lines = [f"<strong>Product {index}: {_esc(product.name or 'Unnamed Product')}</strong>"]
        for label, value in (
            ("Link", product.link),
            ("Color", product.color),
            ("Imprint Method", product.imprint_method),
            ("Imprint Color", product.imprint_color),
            ("Location", product.location),
            ("Size", product.size),
            ("Notes", product.notes),
        ):
            if value:
                lines.append(f"• {label}: {_esc(value)}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def format_website_links(links: list[WebsiteLink]) -> str:
    return "\n".join(f"• <strong>{_esc(link.type)}</strong>: {_esc(link.url)}" for link in links)


def build_task_description(payload: RequestPayload, folder_url: str | None = None) -> str:
    """Build the Asana `html_notes` body, wrapped in <body> as Asana requires."""
    sections: list[str] = ["<strong>REQUEST DETAILS</strong>"]
    sections.append(_line("Request Type", payload.request_type or "Not specified"))
    sections.append(_line("Client", payload.client_name or "Not specified"))
    sections.append(_line("Request Title", payload.request_title or "Not specified"))
    sections.append(_line("Region", payload.region or "Not specified"))
    sections.append(
        _line(
            "Submitted By",
            f"{payload.requestor_name or 'Unknown'} ({payload.requestor_email or 'no-email'})",
        )
    )
    if payload.due_date:
        due = payload.due_date + (f" at {payload.due_time}" if payload.due_time else "")
        sections.append(_line("Due Date", due))

    specifics = _request_specific_lines(payload)
    if specifics:
        sections.append("\n<strong>REQUEST-SPECIFIC DETAILS</strong>")
        sections.extend(specifics)

    if payload.request_type == "Mockup" and payload.products:
        sections.append("\n<strong>PRODUCTS</strong>")
        sections.append(format_products(payload.products))

    sections.append("\n<strong>PROJECT INFORMATION</strong>")
    if payload.project_number:
        sections.append(_line("Project Number", payload.project_number))
    sections.append(_line("Project Value", payload.project_value or "Not specified"))
    sections.append(_line("Billable", payload.billable or "Not specified"))
    if payload.client_type:
        sections.append(_line("Client Type", payload.client_type))
    if payload.labels:
        sections.append(_line("Labels", ", ".join(payload.labels)))
    if payload.add_collaborators and payload.collaborators:
        sections.append(_line("Collaborators", ", ".join(payload.collaborators)))

    if payload.pertinent_information:
        sections.append("\n<strong>PERTINENT INFORMATION</strong>")
        sections.append(_esc(strip_html(payload.pertinent_information)))

    if payload.website_links:
        sections.append("\n<strong>WEBSITE &amp; SOCIAL LINKS</strong>")
        sections.append(format_website_links(payload.website_links))

    if folder_url:
        sections.append("\n<strong>FILES</strong>")
        sections.append(f'<a href="{_esc(folder_url)}">View Files in Google Drive</a>')

    return "<body>" + "\n".join(sections) + "</body>"


def format_custom_fields(
    payload: RequestPayload,
    settings: Settings,
    folder_url: str | None = None,
) -> dict[str, str]:
    """Map payload values onto Asana custom field GIDs.

    Enum fields resolve to option GIDs; values without a known option are
    skipped rather than sent as free text, which Asana would reject.
    """
    fields = settings.asana_custom_fields
    options = settings.asana_enum_options
    custom: dict[str, str] = {}

    for key, value in (
        ("request", payload.request_type),
        ("value", payload.project_value),
        ("billable", payload.billable),
        ("region", payload.region),
    ):
        option = options.get(key, {}).get(value or "")
        if option and key in fields:
            custom[fields[key]] = option

    for key, value in (
        ("client", payload.client_name),
        ("project_number", payload.project_number),
        ("google_folder", folder_url),
    ):
        if value and key in fields:
            custom[fields[key]] = value
    return custom


# Request type -> (label, payload attribute) pairs shown under request-specific details.
_REQUEST_SPECIFIC_FIELDS: dict[str, tuple[tuple[str, str], ...]] = {
    "Mockup": (("Mockup Type", "mockup_type"),),
    "PPTX": (
        ("PPTX Type", "pptx_type"),
        ("Number of Slides", "number_of_slides"),
        ("Presentation Structure", "presentation_structure"),
    ),
    "Rise & Shine": (
        ("Level", "rise_and_shine_level"),
        ("Number of Slides", "number_of_slides"),
    ),
    "Proofs": (("Proof Type", "proof_type"),),
    "Sneak Peek": (("Sneak Peek Options", "sneak_peek_options"),),
}


def _request_specific_lines(payload: RequestPayload) -> list[str]:
    lines: list[str] = []
    for label, attribute in _REQUEST_SPECIFIC_FIELDS.get(payload.request_type or "", ()):
        value = getattr(payload, attribute)
        if value:
            lines.append(_line(label, str(value)))
    return lines


def _line(label: str, value: str) -> str:
    return f"<strong>{label}:</strong> {_esc(value)}"


def _esc(value: str) -> str:
    return html.escape(value, quote=True)
