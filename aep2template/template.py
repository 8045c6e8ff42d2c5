"""
Template assembly and the end-to-end conversion pipeline.

    project file -> AnalysisOrchestrator -> main composition -> build_timeline
                 -> merge field catalogue -> Template
    asset directory -> scan_report (on a worker thread, joined before assembly)
"""

from __future__ import annotations

import json
import logging
import os
import re
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from aep2template import merge_fields
from aep2template.assets import AssetCache, AssetScanReport, asset_report, optimize_asset_paths, scan_report
from aep2template.compositions import select_main_composition
from aep2template.config import ParserConfig
from aep2template.errors import Diagnostic, ProjectValidationError, ReasonCodes
from aep2template.log_utils import get_logger, new_correlation_id, time_operation
from aep2template.models import (
    Asset,
    MergeField,
    ProjectAnalysis,
    Template,
    TemplateMetadata,
    Timeline,
)
from aep2template.orchestrator import AnalysisOrchestrator
from aep2template.timeline import build_timeline, timeline_stats
from aep2template.validate_template import validate_template_document

logger = logging.getLogger(__name__)


@dataclass
class ConversionResult:
    template: Template
    analysis: ProjectAnalysis
    diagnostics: List[Diagnostic] = field(default_factory=list)
    report: Dict[str, Any] = field(default_factory=dict)


def generate_template_name(path: str) -> str:
    """'my_promo-v2.aep' -> 'My Promo V2'."""
    stem = os.path.splitext(os.path.basename(path))[0]
    name = re.sub(r"[_-]", " ", stem)
    name = re.sub(r"\b\w", lambda m: m.group(0).upper(), name)
    return re.sub(r"\s+", " ", name).strip() or "Untitled Template"


def default_description(path: str) -> str:
    return f"Template generated from After Effects project: {os.path.basename(path)}"


def assemble_template(analysis: ProjectAnalysis, timeline: Timeline, fields: List[MergeField],
                      assets: List[Asset], source_file: str, name: Optional[str] = None,
                      description: Optional[str] = None,
                      diagnostics: Optional[List[Diagnostic]] = None,
                      extra_metadata: Optional[Dict[str, Any]] = None) -> Template:
    """Combine the pipeline outputs into the persisted Template document."""
    extra: Dict[str, Any] = {
        "appVersion": analysis.metadata.app_version,
        "correlationId": analysis.metadata.correlation_id,
        "compositionCount": len(analysis.compositions),
        "layerCount": sum(1 for _ in analysis.iter_layers()),
        "expressionCount": len(analysis.expressions),
        "attempts": list(analysis.metadata.attempts),
        "warnings": [d.to_dict() for d in diagnostics or []],
    }
    extra.update(extra_metadata or {})
    return Template(
        id=str(uuid.uuid4()),
        name=name or generate_template_name(source_file),
        description=description or default_description(source_file),
        timeline=timeline,
        merge_fields=list(fields),
        assets=list(assets),
        metadata=TemplateMetadata(
            source_file=os.path.basename(source_file),
            analysis_method=analysis.metadata.method,
            created_at=datetime.now(timezone.utc).isoformat(),
            extra=extra,
        ),
    )


def processing_report(template: Template, analysis: ProjectAnalysis,
                      diagnostics: List[Diagnostic]) -> Dict[str, Any]:
    tracks = template.timeline.tracks
    codes: Dict[str, int] = {}
    for d in diagnostics:
        codes[d.code] = codes.get(d.code, 0) + 1
    return {
        "analysisMethod": analysis.metadata.method,
        "compositions": len(analysis.compositions),
        "layers": sum(1 for _ in analysis.iter_layers()),
        "tracks": len(tracks),
        "clips": sum(len(t.clips) for t in tracks),
        "clipsRemoved": sum(t.metadata.get("optimizations", {}).get("clipsRemoved", 0) for t in tracks),
        "mergeFields": len(template.merge_fields),
        "assets": asset_report(template.assets),
        "timeline": timeline_stats(template.timeline),
        "diagnostics": codes,
    }


def convert_project(path: str, assets_dir: Optional[str] = None, name: Optional[str] = None,
                    description: Optional[str] = None, config: Optional[ParserConfig] = None,
                    orchestrator: Optional[AnalysisOrchestrator] = None,
                    cache: Optional[AssetCache] = None, correlation_id: Optional[str] = None,
                    probe_assets: bool = True, asset_root: Optional[str] = None) -> ConversionResult:
    """
    Convert one project into a Template.

    Args:
        path: .aep/.aet project
        assets_dir: Directory of companion media to catalogue (optional)
        name: Template name (derived from the file name when omitted)
        description: Template description
        config: Parser configuration
        orchestrator: Pre-built orchestrator, to reuse probed host capabilities
        cache: Asset cache shared across conversions
        correlation_id: Id for every log record of this conversion
        probe_assets: Derive media metadata while scanning
        asset_root: Root that asset paths are made relative to (defaults to assets_dir)

    Returns:
        ConversionResult with the Template, the analysis, diagnostics and a report

    Raises:
        InvalidFileError: The project file is unusable
        AllStrategiesFailed: No analysis strategy succeeded
        ProjectValidationError: The main composition has layers but none is usable
    """
    config = config or (orchestrator.config if orchestrator else ParserConfig())
    orchestrator = orchestrator or AnalysisOrchestrator(config)
    cid = correlation_id or new_correlation_id()
    log = get_logger(__name__, cid)

    with time_operation(log, "conversion") as timing:
        scan: Optional[AssetScanReport] = None
        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="aep-assets") as pool:
            scan_future = pool.submit(scan_report, assets_dir, cache, probe_assets) if assets_dir else None
            analysis = orchestrator.analyze(path, cid)
            if scan_future is not None:
                scan = scan_future.result()

        diagnostics: List[Diagnostic] = list(analysis.metadata.warnings)
        main = select_main_composition(analysis.compositions)
        real_layers = None
        if not main.layers:
            real_layers = [l for l in analysis.layers if l.composition in (None, main.name)]

        layer_issues: List[Diagnostic] = []
        timeline = build_timeline(main, config, real_layers=real_layers, diagnostics=layer_issues)
        diagnostics.extend(layer_issues)

        candidates = len(main.layers) if main.layers else len(real_layers or [])
        clip_count = sum(len(t.clips) for t in timeline.tracks)
        invalid = [d for d in layer_issues if d.code == ReasonCodes.LAYER_INVALID]
        if candidates and clip_count == 0 and invalid:
            raise ProjectValidationError(
                f"None of the {candidates} layers in '{main.name}' is usable",
                diagnostics=layer_issues,
                path=path,
                correlation_id=cid,
                code=ReasonCodes.NO_USABLE_LAYERS,
            )

        fields = list(merge_fields.extract(analysis).values())
        assets: List[Asset] = []
        if scan is not None:
            assets = optimize_asset_paths(scan.assets, asset_root or assets_dir)
            diagnostics.extend(scan.issues)

        template = assemble_template(
            analysis, timeline, fields, assets, path,
            name=name, description=description, diagnostics=diagnostics,
            extra_metadata={"mainComposition": main.name, "stats": timeline_stats(timeline)},
        )

    validation = validate_template_document(template.to_dict())
    if not validation.ok:
        for err in validation.errors:
            log.warning(f"Template check {err.code} at {'/'.join(map(str, err.path))}: {err.message}")

    report = processing_report(template, analysis, diagnostics)
    report["durationMs"] = timing.get("duration_ms")
    report["validation"] = validation.summary
    log.info(
        f"Converted {os.path.basename(path)}: {report['tracks']} tracks, {report['clips']} clips, "
        f"{report['mergeFields']} merge fields, {len(assets)} assets"
    )
    return ConversionResult(template=template, analysis=analysis, diagnostics=diagnostics, report=report)


def template_to_json(template: Template) -> str:
    return json.dumps(template.to_dict(), indent=2, ensure_ascii=False)


def write_template(template: Template, out_path: str) -> None:
    with open(out_path, "w", encoding="utf-8") as f:
        f.write(template_to_json(template))
    logger.info(f"Template written to {out_path}")


def load_template(path: str) -> Template:
    with open(path, "r", encoding="utf-8") as f:
        return Template.from_dict(json.load(f))
