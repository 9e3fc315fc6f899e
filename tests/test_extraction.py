"""
Gallery page extraction tests
"""

from sfpg_components.core import extract_images, extract_subdirectories, extract_this_directory
from sfpg_components.types import GalleryEntry

from conftest import gallery_page


class TestExtraction:
    """The three extraction rules over one page"""

    def setup_method(self):
        self.page = gallery_page(
            this_dir=("Holidays", "root-token"),
            images=[("beach", "img-a"), ("sunset", "img-b")],
            subdirs=[("2019", "dir-2019"), ("2020", "dir-2020")],
        ).decode("utf-8")

    def test_this_directory(self):
        entry = extract_this_directory(self.page)
        assert entry == GalleryEntry(index=0, link="root-token", name="Holidays", is_directory=True)

    def test_subdirectories_in_order(self):
        entries = extract_subdirectories(self.page)
        assert [(e.index, e.name, e.link) for e in entries] == [
            (1, "2019", "dir-2019"),
            (2, "2020", "dir-2020"),
        ]
        assert all(e.is_directory for e in entries)

    def test_images_skip_info(self):
        entries = extract_images(self.page)
        assert [(e.index, e.name, e.link) for e in entries] == [(0, "beach", "img-a"), (1, "sunset", "img-b")]
        assert not any(e.is_directory for e in entries)

    def test_directory_rules_do_not_overlap(self):
        page = gallery_page(subdirs=[("Only", "only-token")]).decode("utf-8")
        assert extract_this_directory(page) is None
        page = gallery_page(this_dir=("Root", "r")).decode("utf-8")
        assert extract_subdirectories(page) == []

    def test_empty_page(self):
        assert extract_this_directory("<html></html>") is None
        assert extract_subdirectories("<html></html>") == []
        assert extract_images("<html></html>") == []


class TestExtractionEdgeCases:
    """Quoting and layout variations"""

    def test_escaped_quotes(self):
        page = r"imgLink[3] = 'tok'; imgName[3] = 'Bob\'s cat'; imgInfo[3] = 'x';"
        (entry,) = extract_images(page)
        assert entry.name == "Bob's cat"
        assert entry.index == 3

    def test_empty_name_falls_back_to_link(self):
        (entry,) = extract_images("imgLink[0] = 'tok'; imgName[0] = '';")
        assert entry.name is None
        assert entry.display_name == "tok"

    def test_mismatched_indexes_ignored(self):
        page = "dirName[1] = 'A'; dirLink[1] = 'a';\ndirName[2] = 'B'; dirLink[2] = 'b';"
        assert extract_this_directory(page) is None
        assert [e.link for e in extract_subdirectories(page)] == ["a", "b"]

    def test_several_declarations_on_one_line(self):
        page = (
            "imgLink[0] = 'a'; imgName[0] = 'one'; imgInfo[0] = 'i'; "
            "imgLink[1] = 'b'; imgName[1] = 'two'; imgInfo[1] = 'j';"
        )
        assert [e.name for e in extract_images(page)] == ["one", "two"]

    def test_str(self):
        entry = GalleryEntry(index=2, link="tok", name="cat")
        assert str(entry) == "[2] cat: tok"
