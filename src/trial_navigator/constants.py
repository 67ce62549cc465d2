"""Project-wide constants."""

# -- Base client defaults ---------------------------------------------------
DEFAULT_TIMEOUT: float = 30.0
DEFAULT_MAX_RETRIES: int = 3
RATE_LIMIT_WINDOW_SECONDS: float = 1.0
RATE_LIMIT_RETRY_DELAY: float = 2.0  # wait before the single 429 retry

# -- Per-source limits (requests / second), timeouts (s), cache TTLs (s) ----
CLINICAL_TRIALS_RATE_LIMIT: int = 3
CLINICAL_TRIALS_TIMEOUT: float = 15.0
CLINICAL_TRIALS_CACHE_TTL: int = 86400  # 24 hours

PUBMED_RATE_LIMIT: int = 3
PUBMED_TIMEOUT: float = 10.0
PUBMED_CACHE_TTL: int = 43200  # 12 hours

ICD10_RATE_LIMIT: int = 5
ICD10_TIMEOUT: float = 8.0
ICD10_CACHE_TTL: int = 604800  # 7 days

OPENFDA_RATE_LIMIT: int = 5
OPENFDA_TIMEOUT: float = 8.0
OPENFDA_CACHE_TTL: int = 86400

# -- ClinicalTrials.gov -----------------------------------------------------
CLINICAL_TRIALS_BASE_URL: str = "https://clinicaltrials.gov/api/v2/studies"
CLINICAL_TRIALS_STUDY_URL: str = "https://clinicaltrials.gov/study"
CLINICAL_TRIALS_MAX_PAGE_SIZE: int = 50
MAX_SEARCH_TERMS: int = 3
MAX_CONDITION_SYNONYMS: int = 2

# -- Search fallback / composite timeouts -----------------------------------
FALLBACK_MIN_RESULTS: int = 3
FALLBACK_MIN_RADIUS_MILES: int = 200
FALLBACK_TIMEOUT: float = 30.0
SEARCH_STEP_TIMEOUT: float = 60.0
LITERATURE_STEP_TIMEOUT: float = 60.0
EMBEDDING_TIMEOUT: float = 30.0
MIN_RELEVANCE_SCORE: float = 0.1
SCORE_TIE_TOLERANCE: float = 0.01

# -- PubMed / NCBI ----------------------------------------------------------
NCBI_BASE_URL: str = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
PUBMED_SEARCH_URL: str = f"{NCBI_BASE_URL}/esearch.fcgi"
PUBMED_FETCH_URL: str = f"{NCBI_BASE_URL}/efetch.fcgi"
PUBMED_FETCH_DELAY: float = 0.2
PUBMED_MAX_QUERIES: int = 3

# -- openFDA ----------------------------------------------------------------
OPENFDA_LABEL_URL: str = "https://api.fda.gov/drug/label.json"

# -- ICD-10-CM (NLM Clinical Tables) ----------------------------------------
ICD10_SEARCH_URL: str = "https://clinicaltables.nlm.nih.gov/api/icd10cm/v3/search"

# -- Condition synonym table ------------------------------------------------
# Order matters: query expansion uses the first key found in the condition.
CONDITION_SYNONYMS: dict[str, list[str]] = {
    "diabetes": [
        "diabetes mellitus",
        "type 2 diabetes",
        "type 1 diabetes",
        "diabetic",
    ],
    "cancer": ["neoplasm", "tumor", "malignancy", "carcinoma"],
    "hypertension": ["high blood pressure", "elevated blood pressure", "htn"],
    "heart failure": ["cardiac failure", "congestive heart failure", "chf"],
    "copd": [
        "chronic obstructive pulmonary disease",
        "emphysema",
        "chronic bronchitis",
    ],
    "depression": ["major depressive disorder", "depressive disorder", "mdd"],
    "anxiety": ["anxiety disorder", "generalized anxiety disorder", "gad"],
    "arthritis": ["rheumatoid arthritis", "osteoarthritis", "joint inflammation"],
    "stroke": ["cerebrovascular accident", "cva", "brain attack"],
    "pneumonia": ["lung infection", "respiratory infection"],
}

CONDITION_ABBREVIATIONS: dict[str, str] = {
    "t2dm": "type 2 diabetes mellitus",
    "t1dm": "type 1 diabetes mellitus",
    "dm": "diabetes mellitus",
    "htn": "hypertension",
    "chf": "congestive heart failure",
    "copd": "chronic obstructive pulmonary disease",
    "mi": "myocardial infarction",
    "cad": "coronary artery disease",
    "ckd": "chronic kidney disease",
    "nsclc": "non-small cell lung cancer",
}

# -- Trial status priority (lower sorts first on score ties) ----------------
STATUS_PRIORITY: dict[str, int] = {
    "RECRUITING": 0,
    "ACTIVE_NOT_RECRUITING": 1,
    "ENROLLING_BY_INVITATION": 2,
}

# -- Biomarkers recognised in eligibility text ------------------------------
BIOMARKER_PATTERN: str = (
    r"\b(EGFR|ALK|ROS1|PD-L1|KRAS|BRAF|HER2|BRCA[12]?|MSI(?:-H)?|TMB)\b"
)

# -- Interaction severity keywords (checked in this order) ------------------
SEVERITY_KEYWORDS: list[tuple[str, list[str]]] = [
    ("contraindicated", ["contraindicated", "should not be used"]),
    ("major", ["major", "severe", "serious"]),
    ("moderate", ["moderate", "caution", "monitor"]),
]

MANAGEMENT_PATTERNS: list[tuple[str, str]] = [
    ("monitor", "Monitor patient closely for adverse effects"),
    ("adjust dose", "Dose adjustment may be required"),
    ("avoid", "Avoid concurrent use if possible"),
    ("consider", "Consider alternative therapy"),
]

CLINICAL_EFFECT_PATTERNS: list[str] = [
    r"increased risk of ([^.;,]+)",
    r"decreased effectiveness of ([^.;,]+)",
    r"enhanced ([^.;,]+)",
    r"reduced ([^.;,]+)",
    r"toxicity of ([^.;,]+)",
]

ORGAN_FUNCTION_KEYWORDS: list[str] = ["liver", "hepatic", "kidney", "renal"]

# -- ICD-10 chapter by first letter of the code -----------------------------
ICD10_CATEGORIES: dict[str, str] = {
    "A": "Infectious and parasitic diseases",
    "B": "Infectious and parasitic diseases",
    "C": "Neoplasms",
    "D": "Neoplasms / Blood and immune disorders",
    "E": "Endocrine, nutritional and metabolic diseases",
    "F": "Mental and behavioral disorders",
    "G": "Diseases of the nervous system",
    "H": "Diseases of the eye, ear and mastoid process",
    "I": "Diseases of the circulatory system",
    "J": "Diseases of the respiratory system",
    "K": "Diseases of the digestive system",
    "L": "Diseases of the skin and subcutaneous tissue",
    "M": "Diseases of the musculoskeletal system",
    "N": "Diseases of the genitourinary system",
    "O": "Pregnancy, childbirth and the puerperium",
    "P": "Conditions originating in the perinatal period",
    "Q": "Congenital malformations",
    "R": "Symptoms, signs and abnormal findings",
    "S": "Injury and poisoning",
    "T": "Injury and poisoning",
    "V": "External causes of morbidity",
    "W": "External causes of morbidity",
    "X": "External causes of morbidity",
    "Y": "External causes of morbidity",
    "Z": "Factors influencing health status",
}
