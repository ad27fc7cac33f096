"""
FZD5 mutant assay analysis.

Ingests replicate assay readouts for FZD5 receptor mutants, summarizes them
per mutant, clusters mutants on their rescaled multi-assay profile and
projects the result onto 2D embeddings and the receptor's structural
segments.

Architecture:
- pipeline/ingest.py: Load assay CSVs into the long observation table
- pipeline/normalize.py: Value transforms, percent-of-WT, baseline subtraction, [0, 1] rescaling
- pipeline/summarize.py: Per-mutant mean/SD/SEM, Welch tests against WT, assay correlation
- pipeline/matrix.py: Mutation x assay similarity matrix
- analysis/clustering.py: Ward clustering and silhouette-width sweep
- analysis/embedding.py: PCA and non-metric MDS
- analysis/structure.py: Clusters and values on Ballesteros-Weinstein positions
- evaluation/sanity.py: Guardrail checks on every phase output
- reporting/: Plotly figures, manifest and HTML report
"""

# Long observation row schema (one row per mutation, assay type, replicate)
OBSERVATION_SCHEMA = {
    "dataset_id": "str",        # Source dataset from config: dep_bret
    "mutation": "str",          # Substitution code or wild-type label: W73A, WT
    "assay_type": "str",        # Measure name: DEP_log_BRET50
    "replicate": "str",         # Replicate id from the CSV, or r1, r2, ...
    "value_raw": "float",       # Reading as exported
    "value": "float",           # After transform and normalization
    # Added from the structural annotation:
    "bw": "str",                # Ballesteros-Weinstein position: 3.50
    "helix": "int",             # Helix or loop prefix: 3, 45
    "locant": "int",            # Position relative to the most conserved residue (x.50)
    "segment": "str",           # TM1..TM7, ICL1..ICL3, ECL1..ECL3, H8
    "residue": "int",           # Sequence position
}

__version__ = "0.1.0"

__all__ = [
    "OBSERVATION_SCHEMA",
]
