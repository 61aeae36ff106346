from recap.services.transcript_normalizer import (
    UNKNOWN_SPEAKER,
    RegexTranscriptNormalizer,
    normalize,
)


def test_chat_marker_line_names_participant():
    result = normalize("(chat) Ana: hola a todos")
    assert result.text == "Ana: hola a todos"
    assert result.participants == ("Ana",)


def test_unattributed_line_gets_unknown_speaker():
    result = normalize("buenas tardes")
    assert result.text == f"{UNKNOWN_SPEAKER}: buenas tardes"
    assert result.participants == ()


def test_participants_are_distinct_in_first_seen_order():
    raw = "Luis: hola\nAna - qué tal\nLuis: seguimos\n"
    result = normalize(raw)
    assert result.participants == ("Luis", "Ana")
    assert result.text.splitlines() == ["Luis: hola", "Ana: qué tal", "Luis: seguimos"]


def test_headers_are_kept_and_blank_lines_dropped():
    raw = "\n--- transcript-r1-u1.txt (from transcripts) ---\n\nAna: hola\n"
    result = normalize(raw)
    assert result.text.splitlines() == ["--- transcript-r1-u1.txt (from transcripts) ---", "Ana: hola"]


def test_loose_chat_marker_inside_line():
    result = normalize("msg (chat) Marta: nos vemos")
    assert result.participants == ("Marta",)
    assert result.text == "Marta: nos vemos"


def test_stored_timestamp_lines_are_unattributed():
    result = normalize("[2024-05-01T09:30:15.250Z] u1: hola")
    assert result.text == f"{UNKNOWN_SPEAKER}: [2024-05-01T09:30:15.250Z] u1: hola"


def test_failure_returns_raw_text(monkeypatch):
    normalizer = RegexTranscriptNormalizer()

    def boom(_raw):
        raise RuntimeError("regex exploded")

    monkeypatch.setattr(normalizer, "_normalize", boom)
    result = normalizer.normalize("Ana: hola")
    assert result.text == "Ana: hola"
    assert result.participants == ()


def test_empty_input():
    assert normalize("").text == ""
