#!/usr/bin/env python3
"""
Render the FZD5 mutant HTML report from a Jinja template.

The report is a short narrative page over ``fzd5_manifest.json``. Figures
and the manifest are generated separately by ``fzd5.reporting.plot_figures``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..config import REPORTS_DIR, TEMPLATES_DIR, logger
from .plot_figures import MANIFEST_NAME

TEMPLATE_NAME = "fzd5_report.html.j2"
REPORT_NAME = "fzd5_report.html"


def load_manifest(reports_dir: Path = REPORTS_DIR) -> dict:
    """Load manifest produced by plot_figures."""
    manifest_path = reports_dir / MANIFEST_NAME
    if not manifest_path.exists():
        raise FileNotFoundError(
            f"Manifest not found at {manifest_path}. "
            "Run the figures phase (fzd5.reporting.plot_figures) first."
        )

    with manifest_path.open(encoding="utf-8") as handle:
        manifest = json.load(handle)

    # Minimal sanity checks
    required_keys = ["metadata", "n_mutations", "n_assays", "k", "clusters", "figures"]
    missing = [key for key in required_keys if key not in manifest]
    if missing:
        raise ValueError(f"Manifest missing required keys: {missing}")

    return manifest


def render_html_report(
    manifest: dict,
    reports_dir: Path = REPORTS_DIR,
    templates_dir: Path = TEMPLATES_DIR,
) -> Path:
    """Render the HTML report using the Jinja template."""
    env = Environment(
        loader=FileSystemLoader(str(templates_dir)),
        autoescape=select_autoescape(["html", "xml"]),
    )
    template = env.get_template(TEMPLATE_NAME)

    html = template.render(manifest=manifest)

    reports_dir.mkdir(parents=True, exist_ok=True)
    output_path = reports_dir / REPORT_NAME
    output_path.write_text(html, encoding="utf-8")
    logger.info("Wrote HTML report to %s", output_path)
    return output_path


def main() -> None:
    """CLI entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    )
    manifest = load_manifest()
    render_html_report(manifest)


if __name__ == "__main__":
    main()
