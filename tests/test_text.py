from kalavara.domain.text import clean_text, extract_email_text, html_to_text, looks_like_html


def test_looks_like_html() -> None:
    assert looks_like_html("<p>Hello</p>")
    assert not looks_like_html("Rs. 100 debited from a/c")


def test_html_to_text_drops_scripts_and_breaks_blocks() -> None:
    html = (
        "<html><head><title>ignored</title></head><body>"
        "<script>var x = 1;</script>"
        "<p>Rs.500.00 debited</p><div>to John<br>on 05-01-25</div>"
        "</body></html>"
    )
    text = html_to_text(html)

    assert "var x" not in text
    assert "ignored" not in text
    lines = [line for line in text.split("\n") if line]
    assert lines == ["Rs.500.00 debited", "to John", "on 05-01-25"]


def test_html_table_cells_are_spaced() -> None:
    text = extract_email_text("<table><tr><td>Amount</td><td>Rs.10.00</td></tr></table>")
    assert text == "Amount Rs.10.00"


def test_clean_text_collapses_whitespace() -> None:
    assert clean_text("a\r\n\n\n\nb   \t c ") == "a\n\nb c"


def test_extract_email_text_handles_empty_and_plain() -> None:
    assert extract_email_text("") == ""
    assert extract_email_text(None) == ""
    assert extract_email_text("  plain   text  ") == "plain text"
