# spreadmap/main.py
# ────────────────────────────────────────────────────────────
# spreadmap command line: detect / order / export / extract
# ────────────────────────────────────────────────────────────
from __future__ import annotations
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from spreadmap import constants as C
from spreadmap.logging_setup import configure_logging, log_file_path
from spreadmap.errors import EngineUnavailable, SpreadmapError

logger = logging.getLogger("spreadmap")


def _print_json(payload) -> None:
    json.dump(payload, sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")


# ---------- detect ----------
def cmd_detect(args) -> int:
    from spreadmap.domain.models import DetectParams
    from spreadmap.infra.pdf_adapter import PdfAdapter
    from spreadmap.infra.state_store import JsonStateStore
    from spreadmap.services.detection_session import DetectionSession
    from spreadmap.services.region_detector import RegionDetector

    pdf_path = Path(args.pdf)
    params = DetectParams(
        canny_low=args.canny_low, canny_high=args.canny_high,
        min_area_percent=args.min_area, dilate_iterations=args.dilate,
    )
    pdf = PdfAdapter()
    detector = RegionDetector()
    with pdf.open(pdf_path) as doc:
        page = doc.get_page(args.page)
        regions, viewport = detector.detect_page(page, pdf=pdf, params=params, scale=args.scale)
        page_count = doc.page_count

    logger.info("Detected %d regions on %s page %d", len(regions), pdf_path.name, args.page)
    if args.state:
        session = DetectionSession(JsonStateStore(args.state))
        session.add_pdf(pdf_path.name, pdf_path.name, page_count)
        session.select_pdf(pdf_path.name)
        session.select_page(args.page)
        session.apply_detection(regions, viewport.page_width, viewport.page_height)

    _print_json({
        "pdf": pdf_path.name,
        "page": args.page,
        "pageWidth": viewport.page_width,
        "pageHeight": viewport.page_height,
        "regions": [r.to_dict() for r in regions],
    })
    return 0


# ---------- order ----------
def cmd_order(args) -> int:
    from spreadmap.infra.state_store import JsonStateStore
    from spreadmap.services import ordering
    from spreadmap.services.detection_session import DetectionSession

    session = DetectionSession(JsonStateStore(args.state))
    session.select_pdf(args.pdf_id)
    session.select_page(args.page)
    if args.reset:
        session.mutate(ordering.reset_order)
    for idx in args.exclude or []:
        session.mutate(ordering.toggle_include, idx, False)
    for idx in args.include or []:
        session.mutate(ordering.toggle_include, idx, True)
    for idx in args.assign or []:
        session.mutate(ordering.assign_next_order, idx)
    for _ in range(args.undo):
        session.mutate(ordering.undo_last_order)
    if args.finish:
        session.mutate(ordering.finish_ordering)

    state = session.active_state
    _print_json({
        "order": [{"index": i, "orderIndex": o, "rectId": state.boxes[i].rect_id}
                  for i, o in ordering.resolve_order(state)],
        "manual": ordering.has_manual_order(state),
        "orderingFinished": state.ordering_finished,
    })
    return 0


# ---------- export ----------
def cmd_export(args) -> int:
    from spreadmap.infra.state_store import JsonStateStore
    from spreadmap.services.export_projector import build_export_map, detection_summary, dump_exports

    entries = JsonStateStore(args.state).load()
    exports = build_export_map(entries)
    dump_exports(args.out, exports)
    _print_json(detection_summary(entries))
    return 0


# ---------- extract ----------
def cmd_extract(args) -> int:
    from spreadmap.domain.brands import load_brand_options
    from spreadmap.infra.asset_store import FileAssetStore
    from spreadmap.infra.excel_writer import write_tile_report
    from spreadmap.infra.state_store import load_project, save_project
    from spreadmap.services.batch_extraction import BatchExtractionService, RunState
    from spreadmap.services.export_projector import load_exports
    from spreadmap.services.offer_parser import OfferParser

    project = load_project(args.project)
    exports = load_exports(args.exports)
    brands = load_brand_options(args.brands) if args.brands else []
    svc = BatchExtractionService(
        assets=FileAssetStore(args.assets),
        exports=exports,
        parser=OfferParser(brands),
        max_plu_fields=args.max_plus,
    )

    def on_progress(done: int, total: int):
        if args.progress:
            print(f"\r{done}/{total}", end="", file=sys.stderr, flush=True)

    summary = svc.run(project, on_progress=on_progress)
    if args.progress:
        print(file=sys.stderr)

    save_project(args.out or args.project, project)
    if args.report:
        write_tile_report(project.tiles, args.report)
        logger.info("Report written to %s", args.report)

    print(summary.message())
    if summary.state is RunState.FAILED:
        print(f"PDF extraction failed. Check the PDF asset and detection map. ({summary.error})", file=sys.stderr)
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="spreadmap", description="Map catalogue PDF spreads to tiles and extract PLUs.")
    p.add_argument("--version", action="version", version=f"%(prog)s {C.VERSION_TEXT}")
    p.add_argument("-v", "--verbose", action="store_true", help="log to stderr as well")
    sub = p.add_subparsers(dest="command", required=True)

    d = sub.add_parser("detect", help="detect tile regions on one PDF page")
    d.add_argument("pdf")
    d.add_argument("--page", type=int, default=1)
    d.add_argument("--state", help="detection state JSON to record the result in")
    d.add_argument("--scale", type=float, default=C.RENDER_SCALE)
    d.add_argument("--canny-low", type=int, default=C.CANNY_LOW)
    d.add_argument("--canny-high", type=int, default=C.CANNY_HIGH)
    d.add_argument("--min-area", type=float, default=C.MIN_AREA_PERCENT, help="minimum region area, percent of page")
    d.add_argument("--dilate", type=int, default=C.DILATE_ITERATIONS)
    d.set_defaults(func=cmd_detect)

    o = sub.add_parser("order", help="edit include flags and manual order of a detected page")
    o.add_argument("state")
    o.add_argument("pdf_id")
    o.add_argument("--page", type=int, default=1)
    o.add_argument("--assign", type=int, nargs="*", help="region indices, in click order")
    o.add_argument("--exclude", type=int, nargs="*")
    o.add_argument("--include", type=int, nargs="*")
    o.add_argument("--undo", type=int, default=0, metavar="N", help="undo the last N assignments")
    o.add_argument("--reset", action="store_true")
    o.add_argument("--finish", action="store_true")
    o.set_defaults(func=cmd_order)

    e = sub.add_parser("export", help="project detection state to spread exports")
    e.add_argument("state")
    e.add_argument("out")
    e.set_defaults(func=cmd_export)

    x = sub.add_parser("extract", help="fill tile PLUs and offers from the PDF exports")
    x.add_argument("project")
    x.add_argument("exports")
    x.add_argument("--assets", required=True, help="directory holding the PDF files named by pdfId")
    x.add_argument("--brands", help="brand dictionary (csv, tsv or xlsx)")
    x.add_argument("--report", help="write an Excel report of every tile")
    x.add_argument("--out", help="write the updated project here instead of in place")
    x.add_argument("--max-plus", type=int, default=C.MAX_PLU_FIELDS)
    x.add_argument("--progress", action="store_true")
    x.set_defaults(func=cmd_extract)
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(console=args.verbose)
    logger.info("spreadmap %s: %s", C.VERSION_TEXT, args.command)
    try:
        return args.func(args)
    except EngineUnavailable as e:
        print(f"Detection engine unavailable: {e}", file=sys.stderr)
        return 2
    except (SpreadmapError, OSError, ValueError, KeyError) as e:
        logger.exception("Command %s failed", args.command)
        print(f"{type(e).__name__}: {e}\nSee log: {log_file_path()}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
