"""
Constants and default configurations for the peptide hit engine
"""

import sys

from . import mass_provider

# Physical constants - derived from PyOpenMS
WATER_MASS = mass_provider.get_water_mass()
PROTON_MASS = mass_provider.get_proton_mass()
MASS_C13 = mass_provider.get_c13_mass_difference()

# Mass comparison
MASS_DIGITS_OF_PRECISION = 3
DOUBLE_EPSILON = sys.float_info.epsilon

# Modification symbols
NO_SYMBOL = "-"
LAST_RESORT_SYMBOL = "_"
DEFAULT_MODIFICATION_SYMBOLS = "*#@$&!%~^`+="
NO_AFFECTED_ATOM = "-"

# Terminus sentinels used in modification target residues
N_TERMINAL_PEPTIDE_SYMBOL = "<"
C_TERMINAL_PEPTIDE_SYMBOL = ">"
N_TERMINAL_PROTEIN_SYMBOL = "["
C_TERMINAL_PROTEIN_SYMBOL = "]"
TERMINUS_SYMBOLS = (
    N_TERMINAL_PEPTIDE_SYMBOL
    + C_TERMINAL_PEPTIDE_SYMBOL
    + N_TERMINAL_PROTEIN_SYMBOL
    + C_TERMINAL_PROTEIN_SYMBOL
)

# Prefix/suffix residue conventions
PROTEIN_TERMINUS_SYMBOL = "-"
PREFIX_SUFFIX_SEPARATOR = "."

# Standard refinement losses (residue, mass)
NH3_LOSS_MASS = -17.026549
H2O_LOSS_MASS = -18.0106
STANDARD_REFINEMENT_MODIFICATIONS = [
    ("Q", NH3_LOSS_MASS),
    ("E", H2O_LOSS_MASS),
]

# Known mass correction tags (name -> monoisotopic mass)
MASS_CORRECTION_TAGS = {
    "4xDeut": 4.025107,
    "6C134N15": 10.008269,
    "6xC13N15": 7.017164,
    "AcetAmid": 41.02655,
    "Acetyl": 42.010567,
    "Acrylmid": 71.037117,
    "ADPRibos": 541.061096,
    "AlkSulf": -25.0316,
    "Aminaton": 15.010899,
    "AmOxButa": -2.01565,
    "Bromo": 77.910507,
    "BS3Olnk": 156.078644,
    "C13DtFrm": 36.07567,
    "Carbamyl": 43.005814,
    "Cyano": 24.995249,
    "Cys-Dha": -33.98772,
    "Cystnyl": 119.004097,
    "Deamide": 0.984016,
    "DeutForm": 32.056407,
    "DeutMeth": 17.034479,
    "Dimethyl": 28.0313,
    "DTBP_Alk": 144.03573,
    "Formyl": 27.994915,
    "GalNAFuc": 648.2603,
    "GalNAMan": 664.2551,
    "Gluthone": 305.068146,
    "Guanid": 42.021797,
    "Heme_615": 615.169458,
    "Hexosam": 203.079376,
    "Hexose": 162.052826,
    "ICAT_D0": 442.225006,
    "ICAT_D8": 450.275208,
    "IodoAcet": 57.021465,
    "IodoAcid": 58.005478,
    "Iso_N15": 0.997035,
    "itrac": 144.102066,
    "iTRAQ8": 304.205353,
    "LeuToMet": 17.956421,
    "Lipid2": 576.51178,
    "Mercury": 199.9549,
    "Met_O18": 16.028204,
    "Methyl": 14.01565,
    "Methylmn": 13.031634,
    "MinusH2O": -18.010565,
    "NEM": 125.047676,
    "NH3_Loss": -17.026548,
    "NHS_SS": 87.998283,
    "NO2_Addn": 44.985077,
    "None": 0.0,
    "OMinus2H": 13.979265,
    "One_C12": 12.0,
    "One_O18": 2.004246,
    "OxoAla": -17.992805,
    "palmtlic": 236.21402,
    "PCGalNAz": 502.202332,
    "PEO": 414.193695,
    "PhosAden": 329.052521,
    "Phosph": 79.966331,
    "PhosUrid": 306.025299,
    "Plus1Oxy": 15.994915,
    "Plus2Oxy": 31.989828,
    "Plus3Oxy": 47.984745,
    "Propnyl": 56.026215,
    "Pyro-cmC": 39.994915,
    "SATA_Alk": 131.0041,
    "SATA_Lgt": 115.9932,
    "Sucinate": 116.010956,
    "SulfoNHS": 226.077591,
    "Sumoylat": 484.228149,
    "TMT0Tag": 224.152481,
    "TMT6Tag": 229.162933,
    "TriMeth": 42.046951,
    "Two_O18": 4.008491,
    "Ubiq_02": 114.042931,
    "Ubiq_L": 100.016045,
    "ValToMet": 31.972071,
}

# Tags for masses reported as integers (zero digits of precision)
INTEGER_MASS_CORRECTION_TAGS = {
    -18: "MinusH2O",
    -17: "NH3_Loss",
    -11: "AsnToCys",
    -8: "HisToGlu",
    -7: "TyrToArg",
    -4: "ThrToPro",
    -3: "MetToLys",
    -1: "Dehydro",
    1: "Deamide",
    2: "GluToMet",
    4: "TrypOxy",
    5: "5C13",
    6: "6C13",
    10: "D10-Leu",
    13: "Methylmn",
    14: "Methyl",
    16: "Plus1Oxy",
    18: "LeuToMet",
    25: "Cyano",
    28: "Dimethyl",
    32: "Plus2Oxy",
    42: "Acetyl",
    43: "Carbamyl",
    45: "NO2_Addn",
    48: "Plus3Oxy",
    56: "Propnyl",
    58: "IodoAcid",
    80: "Phosph",
    89: "Biotinyl",
    96: "PhosphH",
    104: "Ubiq_H",
    116: "Sucinate",
    119: "Cystnyl",
    125: "NEM",
    144: "itrac",
    215: "MethylHg",
    236: "ICAT_C13",
    442: "ICAT_D0",
}

# Decoy protein naming conventions (case-insensitive)
DECOY_PREFIXES = ["reversed_", "REV_", "scrambled_", "xxx_", "xxx.", "REV__"]
DECOY_SUFFIXES = [":reversed"]

# Protein reporting
PROTEIN_NAME_NO_MATCH = "__NoMatch__"
UNKNOWN_PROTEIN = "Unknown_Protein"

# Error log and warning throttling
MAX_ERROR_LOG_LENGTH = 4096
WARNINGS_ALWAYS_SHOWN = 10
WARNING_INTERVAL = 100

# Mass consistency check
MASS_CHECK_MIN_THRESHOLD = 0.1
MASS_CHECK_SCALE = 50000.0
MASS_CHECK_PEPTIDE_DISPLAY_LENGTH = 27
MISSING_PRECURSOR_MZ = 1000.0

# Synopsis thresholds per score type
# Format: (score column, higher_is_better, synopsis threshold)
SCORE_PRESETS = {
    "moda": ("Probability", True, 0.05),
    "modplus": ("Probability", True, 0.05),
    "msalign": ("PValue", False, 0.95),
    "msgf": ("EValue", False, 0.95),
}

# Annotation notation dialects
NOTATION_INLINE = "inline"
NOTATION_BRACKETED = "bracketed"

# Canonical output columns
OUTPUT_COLUMNS = [
    "ResultID",
    "Scan",
    "Charge",
    "PrecursorMZ",
    "DelM",
    "DelM_PPM",
    "MH",
    "Peptide",
    "ModificationAnnotation",
    "Protein",
    "Peptide_Position",
    "Score",
    "Rank_Score",
    "FDR",
    "QValue",
]

MOD_SUMMARY_COLUMNS = [
    "Modification_Symbol",
    "Modification_Mass",
    "Target_Residues",
    "Modification_Type",
    "Mass_Correction_Tag",
    "Occurrence_Count",
]

# Default configuration
DEFAULT_CONFIG = {
    # Modification settings
    "mass_digits_of_precision": MASS_DIGITS_OF_PRECISION,
    # None lets the annotator pick the loose digits for the notation
    "mass_digits_of_precision_loose": None,
    "notation": NOTATION_INLINE,
    "allow_duplicate_mod_on_terminus": True,
    # Scoring settings
    "score_column": "Probability",
    "higher_is_better": True,
    "synopsis_threshold": 0.05,
    "first_hits_only": False,
    "group_by_charge": True,
    "tie_epsilon": DOUBLE_EPSILON,
    # Mass settings
    "mass_check_enabled": True,
    "adjust_precursor_for_c13": True,
    # FDR settings
    "decoy_prefixes": DECOY_PREFIXES,
    "decoy_suffixes": DECOY_SUFFIXES,
    # Error reporting
    "max_error_log_length": MAX_ERROR_LOG_LENGTH,
}


def build_config(**overrides) -> dict:
    """
    Merge overrides over DEFAULT_CONFIG.

    Unknown keys raise a KeyError so typos in option names surface early.
    """
    config = dict(DEFAULT_CONFIG)
    for key, value in overrides.items():
        if key not in config:
            raise KeyError(f"Unknown configuration key: {key}")
        config[key] = value
    return config
