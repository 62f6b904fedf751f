"""
Constants for the ingestion and matching pipeline.
"""

from pathlib import Path

MODULE_ROOT = Path(__file__).parent

DATA_DIR = MODULE_ROOT / "data"

FEEDS_CONFIG_PATH = DATA_DIR / "feeds.yaml"

DB_NAME = "oncology_feed.db"

# How many items to take from the top of each RSS feed per run
DEFAULT_MAX_ITEMS_PER_FEED = 10

CANCER_TYPES = (
    "breast",
    "lung",
    "colorectal",
    "prostate",
    "pancreatic",
    "liver",
    "stomach",
    "esophageal",
    "bladder",
    "kidney",
    "cervical",
    "ovarian",
    "leukemia",
    "lymphoma",
    "melanoma",
    "brain",
    "other",
)

# Keyword -> cancer type tag for news and trial text
CANCER_TYPE_KEYWORDS = {
    "breast cancer": "breast",
    "lung cancer": "lung",
    "colorectal cancer": "colorectal",
    "prostate cancer": "prostate",
    "pancreatic cancer": "pancreatic",
    "liver cancer": "liver",
    "stomach cancer": "stomach",
    "esophageal cancer": "esophageal",
    "bladder cancer": "bladder",
    "kidney cancer": "kidney",
    "cervical cancer": "cervical",
    "ovarian cancer": "ovarian",
    "leukemia": "leukemia",
    "lymphoma": "lymphoma",
    "melanoma": "melanoma",
    "brain cancer": "brain",
    "tumor": "other",
    "tumour": "other",
    "oncology": "other",
    "carcinoma": "other",
}

# Research papers are matched against site names as well as full phrases
PAPER_CANCER_TYPE_KEYWORDS = {
    "breast cancer": "breast",
    "breast": "breast",
    "lung cancer": "lung",
    "lung": "lung",
    "colorectal cancer": "colorectal",
    "colorectal": "colorectal",
    "prostate cancer": "prostate",
    "prostate": "prostate",
    "pancreatic cancer": "pancreatic",
    "pancreatic": "pancreatic",
    "liver cancer": "liver",
    "hepatocellular": "liver",
    "stomach cancer": "stomach",
    "gastric": "stomach",
    "esophageal cancer": "esophageal",
    "esophageal": "esophageal",
    "bladder cancer": "bladder",
    "bladder": "bladder",
    "kidney cancer": "kidney",
    "renal": "kidney",
    "cervical cancer": "cervical",
    "cervical": "cervical",
    "ovarian cancer": "ovarian",
    "ovarian": "ovarian",
    "leukemia": "leukemia",
    "lymphoma": "lymphoma",
    "melanoma": "melanoma",
    "brain cancer": "brain",
    "glioma": "brain",
    "glioblastoma": "brain",
}

# Broader keywords that keep an untagged item in the pipeline
RELEVANCE_KEYWORDS = (
    "cancer",
    "tumor",
    "tumour",
    "oncology",
    "carcinoma",
    "malignancy",
    "chemotherapy",
    "radiation therapy",
    "immunotherapy",
    "cancer treatment",
    "cancer research",
    "cancer patient",
    "cancer diagnosis",
)

# Substring -> cross-cutting label
TAG_KEYWORDS = {
    "fda": "FDA",
    "approval": "Approval",
    "trial": "Trial",
    "breakthrough": "Breakthrough",
}

TREATMENT_KEYWORDS = {
    "immunotherapy": "immunotherapy",
    "chemo": "chemotherapy",
    "chemotherapy": "chemotherapy",
    "radiation": "radiation",
    "radiotherapy": "radiation",
    "targeted therapy": "targeted-therapy",
    "targeted treatment": "targeted-therapy",
    "hormone therapy": "hormone-therapy",
    "hormonal therapy": "hormone-therapy",
    "stem cell": "stem-cell-transplant",
    "surgery": "surgery",
    "surgical": "surgery",
}

# Search terms used against OpenFDA label text. The first term of each list is
# the primary search phrase.
LABEL_SEARCH_TERMS = {
    "breast": ["breast cancer", "breast", "mammary"],
    "lung": ["lung cancer", "lung", "pulmonary", "non-small cell lung", "nsclc", "small cell lung", "sclc"],
    "colorectal": ["colorectal cancer", "colorectal", "colon cancer", "colon", "rectal cancer", "rectal"],
    "prostate": ["prostate cancer", "prostate"],
    "pancreatic": ["pancreatic cancer", "pancreatic", "pancreas"],
    "liver": ["liver cancer", "liver", "hepatocellular", "hcc"],
    "stomach": ["stomach cancer", "stomach", "gastric cancer", "gastric"],
    "esophageal": ["esophageal cancer", "esophageal", "esophagus"],
    "bladder": ["bladder cancer", "bladder"],
    "kidney": ["kidney cancer", "kidney", "renal cell", "renal"],
    "cervical": ["cervical cancer", "cervical"],
    "ovarian": ["ovarian cancer", "ovarian"],
    "leukemia": ["leukemia", "leukemic", "aml", "all", "cll", "cml"],
    "lymphoma": ["lymphoma", "hodgkin", "non-hodgkin", "nhl"],
    "melanoma": ["melanoma", "melanocytic"],
    "brain": ["brain cancer", "brain", "glioma", "glioblastoma", "gbm", "astrocytoma"],
    "other": ["cancer", "tumor", "tumour", "oncology", "carcinoma"],
}

# Cancer type -> phrase a trial condition is expected to contain
CANCER_TYPE_SEARCH_TERMS = {
    "breast": "breast cancer",
    "lung": "lung cancer",
    "colorectal": "colorectal cancer",
    "prostate": "prostate cancer",
    "pancreatic": "pancreatic cancer",
    "liver": "liver cancer",
    "stomach": "stomach cancer",
    "esophageal": "esophageal cancer",
    "bladder": "bladder cancer",
    "kidney": "kidney cancer",
    "cervical": "cervical cancer",
    "ovarian": "ovarian cancer",
    "leukemia": "leukemia",
    "lymphoma": "lymphoma",
    "melanoma": "melanoma",
    "brain": "brain cancer",
}

DEFAULT_TRIAL_STATUSES = frozenset({
    "RECRUITING",
    "NOT_YET_RECRUITING",
    "ENROLLING_BY_INVITATION",
})

TRIAL_STATUS_WEIGHTS = {
    "RECRUITING": 1.0,
    "NOT_YET_RECRUITING": 0.8,
    "ENROLLING_BY_INVITATION": 0.6,
}
DEFAULT_STATUS_WEIGHT = 0.4
CONDITION_MATCH_BONUS = 0.2

# Trial sites further than this from the user's ZIP code are not matched
DEFAULT_MATCH_RADIUS_MILES = 50.0
DEFAULT_COUNTRY = "US"
GEOCODER_USER_AGENT = "oncology-feed-trial-matching"

UNKNOWN_DRUG = "Unknown Drug"

# FDA application type prefixes, longest first so "ANDA" wins over "ND"
APPLICATION_NUMBER_PREFIXES = ("ANDA", "BLA", "NDA", "BL", "ND")

FDA_APPLICATION_URL = (
    "https://www.accessdata.fda.gov/scripts/cder/daf/index.cfm"
    "?event=overview.process&ApplNo={application_number}"
)
FDA_LABEL_PDF_URL = "https://www.accessdata.fda.gov/spl/data/{spl_id}/{spl_id}.pdf"
OPENFDA_LABEL_URL = "https://api.fda.gov/drug/label.json"

NCBI_BASE_URL = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
NCBI_TOOL = "oncology_feed"
NCBI_EMAIL = "support@example.org"
NCBI_SUMMARY_BATCH_SIZE = 200
PUBMED_URL = "https://www.ncbi.nlm.nih.gov/pubmed/{pubmed_id}"

CLINICAL_TRIALS_API_URL = "https://clinicaltrials.gov/api/v2/studies"

DEFAULT_PLAN_NAME = "Free"
