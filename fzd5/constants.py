"""Controlled vocabulary shared across the FZD5 pipeline."""

# Amino acid three-letter to one-letter mapping
AA_THREE_TO_ONE = {
    "ALA": "A", "ARG": "R", "ASN": "N", "ASP": "D", "CYS": "C",
    "GLN": "Q", "GLU": "E", "GLY": "G", "HIS": "H", "ILE": "I",
    "LEU": "L", "LYS": "K", "MET": "M", "PHE": "F", "PRO": "P",
    "SER": "S", "THR": "T", "TRP": "W", "TYR": "Y", "VAL": "V",
    "STOP": "*", "TER": "*", "*": "*",
}
AA_ONE_LETTER = set(AA_THREE_TO_ONE.values())

# Long observation table, one row per (mutation, assay_type, replicate)
OBSERVATION_KEY = ["mutation", "assay_type", "replicate"]
OBSERVATION_COLUMNS = ["dataset_id", "mutation", "assay_type", "replicate", "value", "value_raw"]

SUMMARY_COLUMNS = ["mutation", "assay_type", "n", "mean", "sd", "sem"]

STRUCTURE_COLUMNS = ["bw", "helix", "locant", "segment", "residue"]

# Ballesteros-Weinstein prefixes for loops and helix 8
BW_LOOP_SEGMENTS = {
    12: "ICL1",
    23: "ECL1",
    34: "ICL2",
    45: "ECL2",
    56: "ICL3",
    67: "ECL3",
}
BW_HELIX_SEGMENTS = {h: f"TM{h}" for h in range(1, 8)}
BW_HELIX_SEGMENTS[8] = "H8"

# Segments in sequence order, N- to C-terminus
SEGMENT_ORDER = [
    "TM1", "ICL1", "TM2", "ECL1", "TM3", "ICL2", "TM4",
    "ECL2", "TM5", "ICL3", "TM6", "ECL3", "TM7", "H8",
]

# Transform and normalization vocabularies for configured measures
VALUE_TRANSFORMS = ("identity", "log10", "neg_log10", "ln")
MEASURE_NORMALIZATIONS = ("none", "percent_wt", "baseline_delta")

# Neutral fill for unmeasured residues on the structure diagram
MISSING_COLOR = "#BDBDBD"
