"""Tests for keyword classification."""

from ingestion.classifier import (
    classify,
    classify_label,
    classify_treatments,
    extract_tags,
    is_relevant,
    mentions_cancer_type,
    should_ingest,
)
from ingestion.constants import PAPER_CANCER_TYPE_KEYWORDS


class TestClassify:
    """Tests for classify function."""

    def test_lung_cancer_is_tagged_lung(self):
        """Test that a lung cancer headline gets the lung tag and no other site."""
        result = classify("New lung cancer drug shows promise")
        assert "lung" in result
        assert "breast" not in result

    def test_case_insensitive(self):
        """Test that matching ignores case."""
        assert classify("BREAST CANCER screening guidelines") == {"breast"}

    def test_multiple_texts_are_combined(self):
        """Test that every text argument is searched."""
        result = classify("Quarterly update", "", "Melanoma and lymphoma outcomes")
        assert result == {"melanoma", "lymphoma"}

    def test_generic_terms_map_to_other(self):
        """Test that generic oncology terms produce the 'other' tag."""
        assert classify("A rare tumor of the adrenal gland") == {"other"}

    def test_no_match_returns_empty_set(self):
        """Test unrelated text gives no tags."""
        assert classify("Local bakery wins award") == set()

    def test_site_name_alone_needs_paper_table(self):
        """Test that bare site names only match with the paper keyword table."""
        text = "Outcomes of gastric resection"
        assert classify(text) == set()
        assert classify(text, keywords=PAPER_CANCER_TYPE_KEYWORDS) == {"stomach"}


class TestRelevance:
    """Tests for is_relevant and should_ingest functions."""

    def test_relevance_keyword_without_site(self):
        """Test that generic cancer wording is relevant without a site tag."""
        assert is_relevant("New chemotherapy schedule approved")
        assert should_ingest("New chemotherapy schedule approved")

    def test_unrelated_text_is_discarded(self):
        """Test that text without any cancer wording is not ingested."""
        assert not should_ingest("Hospital opens new parking garage")

    def test_tagged_text_is_ingested(self):
        """Test that text with a site tag is ingested."""
        assert should_ingest("Leukemia research roundup")


class TestExtractTags:
    """Tests for extract_tags function."""

    def test_detects_all_labels(self):
        """Test that all four labels are detected."""
        text = "FDA approval follows breakthrough trial results"
        assert extract_tags(text) == {"FDA", "Approval", "Trial", "Breakthrough"}

    def test_no_labels(self):
        """Test text without any labels."""
        assert extract_tags("Survivorship stories") == set()


class TestClassifyTreatments:
    """Tests for classify_treatments function."""

    def test_synonyms_collapse(self):
        """Test that synonyms map to the same treatment type."""
        result = classify_treatments("Radiotherapy versus radiation alone")
        assert result == {"radiation"}

    def test_multiple_treatments(self):
        """Test several treatment types in one text."""
        result = classify_treatments("Immunotherapy after surgery")
        assert result == {"immunotherapy", "surgery"}


class TestClassifyLabel:
    """Tests for label classification helpers."""

    def test_short_terms_match_whole_words_only(self):
        """Test that 'all' inside another word does not tag leukemia."""
        assert "leukemia" not in classify_label("indicated for small cell tumors overall")

    def test_short_term_as_word_matches(self):
        """Test that an abbreviation on its own is matched."""
        assert "leukemia" in classify_label("treatment of adult patients with AML")

    def test_mentions_cancer_type(self):
        """Test matching a label against one cancer type."""
        assert mentions_cancer_type("lung", "metastatic non-small cell lung cancer (NSCLC)")
        assert not mentions_cancer_type("breast", "metastatic NSCLC")
