import pytest

from bfeapi.i18n import I18nConfig, LangMapping, Translator


def test_try_trans_fills_placeholders():
    mapping = LangMapping(r"Cluster (\w+) Not Exist", "集群 %s 不存在")
    assert mapping.try_trans("Cluster c1 Not Exist") == ("集群 c1 不存在", True)


def test_try_trans_missing_groups_become_empty():
    mapping = LangMapping(r"Pool (\w+)", "%s-%s")
    assert mapping.try_trans("Pool p1") == ("p1-", True)


def test_try_trans_without_placeholders():
    mapping = LangMapping("Record Existed", "done")
    assert mapping.try_trans("x Record Existed") == ("done", True)


def test_try_trans_no_match():
    mapping = LangMapping("^abc$", "x")
    assert mapping.try_trans("zzz") == ("zzz", False)


def test_invalid_regex():
    with pytest.raises(ValueError) as info:
        LangMapping("(", "x")
    assert "regex fail" in str(info.value)


def _translator():
    return Translator(
        [
            I18nConfig(
                lang="zh",
                mapping={
                    "Param Illegal": "参数非法",
                    r"Cluster (\w+) Not Exist": "集群 %s 不存在",
                },
            )
        ]
    )


def test_translates_type_and_message():
    translator = _translator()
    result = translator.try_mapping_err_msg(
        "zh;q=0.9,en", "Param Illegal: Cluster c1 Not Exist"
    )
    assert result == "参数非法: 集群 c1 不存在"


def test_message_without_type():
    assert _translator().try_mapping_err_msg("zh", "Cluster c9 Not Exist") == "集群 c9 不存在"


def test_unknown_language_keeps_message():
    msg = "Param Illegal: Cluster c1 Not Exist"
    assert _translator().try_mapping_err_msg("fr", msg) == msg


def test_empty_message():
    assert _translator().try_mapping_err_msg("zh", "") == ""


def test_language_pack_first_accepted():
    translator = _translator()
    assert translator.language_pack("en") is None
    pack = translator.language_pack("en,zh")
    assert set(pack) == {"Param Illegal", r"Cluster (\w+) Not Exist"}


def test_untranslatable_parts_kept():
    result = _translator().try_mapping_err_msg("zh", "Other: something")
    assert result == "Other: something"