from bfeapi.language import accept_languages


def test_tags_in_order_without_weights():
    assert accept_languages("zh,en;q=0.8") == ["zh", "en"]


def test_single_language():
    assert accept_languages("en") == ["en"]


def test_empty_header():
    assert accept_languages("") == [""]
    assert accept_languages(None) == [""]


def test_count_matches_commas():
    header = "zh-CN,zh;q=0.9,en;q=0.8,fr"
    assert len(accept_languages(header)) == header.count(",") + 1