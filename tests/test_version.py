import pytest

from tokenstate.version import VERSION, SemanticVersion


def test_current_version_fields():
    expected = SemanticVersion(0, 0, 1)
    assert VERSION == expected
    assert (expected.major, expected.minor, expected.patch) == (0, 0, 1)


def test_current_version_text():
    assert str(SemanticVersion(0, 0, 1)) == "v0.0.1"
    assert str(VERSION) == str(SemanticVersion(0, 0, 1))


def test_text_uses_all_components():
    assert str(SemanticVersion(1, 2, 3)) == "v1.2.3"


def test_versions_order_by_component():
    assert SemanticVersion(0, 0, 1) < SemanticVersion(0, 1, 0) < SemanticVersion(1, 0, 0)
    assert sorted([SemanticVersion(2, 0, 0), VERSION]) == [VERSION, SemanticVersion(2, 0, 0)]


def test_version_is_immutable():
    version = SemanticVersion(0, 0, 1)
    with pytest.raises(AttributeError):
        version.major = 5  # type: ignore[misc]
    assert version == SemanticVersion(0, 0, 1)