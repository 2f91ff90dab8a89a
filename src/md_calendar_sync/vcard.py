"""
vCard reading and writing for contact files.
"""

import logging

import vobject
from vobject.base import VObjectError
from vobject.vcard import Name

from md_calendar_sync.models import Contact

_logger = logging.getLogger(__name__)


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ";".join(str(v) for v in value if v)
    return str(value)


def _values(card, name: str) -> list[str]:
    return [_text(line.value) for line in card.contents.get(name, []) if _text(line.value)]


def _to_contact(card) -> Contact:
    contact = Contact(display_name=_text(card.fn.value) if "fn" in card.contents else "")
    if "n" in card.contents:
        name = card.n.value
        contact.first_name = _text(name.given).replace(";", " ")
        contact.last_name = _text(name.family).replace(";", " ")
    contact.phones = _values(card, "tel")
    contact.emails = _values(card, "email")
    if "org" in card.contents:
        contact.organization = _text(card.org.value)
    if "note" in card.contents:
        contact.note = _text(card.note.value)
    return contact


def parse_vcards(text: str) -> list[Contact]:
    """Return every VCARD in ``text``; an unparseable file yields what was read so far."""
    contacts = []
    try:
        for component in vobject.readComponents(text):
            if component.name.upper() == "VCARD":
                contacts.append(_to_contact(component))
    except VObjectError as e:
        _logger.warning(f"Invalid vCard data: {e}")
    return contacts


def display_name_for(contact: Contact) -> str:
    if contact.display_name:
        return contact.display_name
    full = f"{contact.first_name} {contact.last_name}".strip()
    return full or "Unnamed"


def to_vcard(contact: Contact) -> str:
    """Serialize a contact as a vCard 3.0 document."""
    card = vobject.vCard()
    card.add("n").value = Name(family=contact.last_name, given=contact.first_name)
    card.add("fn").value = display_name_for(contact)
    for phone in contact.phones:
        card.add("tel").value = phone
    for email in contact.emails:
        card.add("email").value = email
    if contact.organization:
        card.add("org").value = [contact.organization]
    if contact.note:
        card.add("note").value = contact.note
    return card.serialize()
