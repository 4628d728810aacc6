"""Anzeigetexte des Adventskalenders.

Alle für Besucher sichtbaren Texte laufen über ``translate``, damit eine
Übersetzung nur diesen Katalog austauschen muss.
"""

MESSAGES = {
    "door_title": "Türchen {day}",
    "image_alt": "Bild zu Türchen {day}",
    "download_label": "Jetzt herunterladen",
    "link_label": "Mehr erfahren",
    "finale_label": "GuideOS herunterladen",
    "modal_close": "Modal schließen",
    "test_mode_banner": "Testmodus aktiv: alle Türchen sind freigeschaltet.",
    "invalid_nonce": "Ungültiges oder fehlendes Sicherheits-Token. Bitte lade die Seite neu und versuche es erneut.",
    "invalid_request": "Ungültige Anfrage.",
    "expired": "Der Kalender ist abgelaufen. Bitte lade die Seite neu.",
    "missing_door": "Dieses Türchen wurde nicht gefunden.",
    "locked": "Dieses Türchen ist noch verschlossen.",
    "network_error": "Das Türchen konnte gerade nicht geladen werden. Bitte versuche es später erneut.",
    "page_not_found": "Diese Seite gibt es nicht.",
}


def translate(key, **values):
    text = MESSAGES.get(key, key)
    if values:
        return text.format(**values)
    return text
