import argparse
import json
import logging
import atexit
from datetime import datetime
from pathlib import Path

from .database import (
    init_db, get_db, close_pool, run_maintenance, upsert_films, load_films,
    find_films_by_title, update_derived_fields, delete_films, catalog_stats,
)
from . import config
from .config import (
    ARTHOUSE_PRUNE_THRESHOLD,
    DEFAULT_PAGE_LIMIT,
    EXPORT_CHUNK_SIZE,
    IMPORT_CHUNK_SIZE,
)
from .arthouse import score_breakdown
from .discovery import DiscoveryPage, InvalidRequest, SortOption
from .enrichment import enrich_film, plan_prune
from .film import Film
from .service import DiscoveryService, ImpressionRecorder
from tqdm import tqdm

logger = logging.getLogger(__name__)

# Register cleanup on exit
atexit.register(close_pool)


def _batched(items, size):
    for i in range(0, len(items), size):
        yield items[i:i + size]


def cmd_import(args: argparse.Namespace) -> None:
    """Import films from a JSON file (a list, or an object with a "films" list)."""
    with open(args.file, 'r') as f:
        data = json.load(f)

    records = data.get('films', []) if isinstance(data, dict) else data
    films = [Film.from_dict(r) for r in records]
    if args.enrich:
        films = [enrich_film(f) for f in tqdm(films, desc="Enriching")]

    init_db()
    imported = 0
    for chunk in _batched(films, IMPORT_CHUNK_SIZE):
        imported += upsert_films(chunk)

    if args.maintenance:
        run_maintenance(vacuum=True, analyze=True)

    logger.info(f"Imported {imported} films from {args.file}")


def cmd_export(args: argparse.Namespace) -> None:
    """Export the catalog to a JSON file."""
    init_db()
    films = load_films()

    with open(args.file, 'w') as f:
        f.write('{"films":[')
        first = True
        for chunk in _batched(films, EXPORT_CHUNK_SIZE):
            for film in chunk:
                if not first:
                    f.write(',')
                json.dump(film.to_dict(), f)
                first = False
        f.write('], "exported_at": "%s"}' % datetime.now().isoformat())

    logger.info(f"Exported {len(films)} films to {args.file}")


def cmd_migrate(args: argparse.Namespace) -> None:
    """Recompute derived tags, scores and moods for every stored film."""
    init_db()
    films = load_films()
    if not films:
        logger.info("No films to migrate")
        return

    updated = [
        enrich_film(film, retag=args.retag, reset_counters=args.reset_counters)
        for film in tqdm(films, desc="Migrating")
    ]
    with get_db():
        for chunk in _batched(updated, IMPORT_CHUNK_SIZE):
            update_derived_fields(chunk)

    if args.maintenance:
        run_maintenance(vacuum=False, analyze=True)

    tagged = sum(1 for f in updated if f.derived_tags)
    logger.info(f"Migrated {len(updated)} films ({tagged} tagged)")
    if args.reset_counters:
        logger.info("Show counters reset")


def cmd_prune(args: argparse.Namespace) -> None:
    """Remove tier 3 films that score below the arthouse threshold."""
    init_db()
    films = load_films()
    plan = plan_prune(tqdm(films, desc="Scoring"), threshold=args.threshold)
    stats = plan.stats()

    logger.info(f"\nArthouse threshold: {plan.threshold}")
    logger.info(f"  Total films:      {stats['total']}")
    logger.info(f"  Preserved (1-2):  {stats['preserved']}")
    logger.info(f"  Kept:             {stats['kept']}")
    logger.info(f"  Below threshold:  {stats['removed']}")

    if plan.to_remove:
        logger.info("\nLowest scoring:")
        for entry in plan.to_remove[:10]:
            logger.info(f"  {entry['score']:3}  {entry['title']} ({entry['year']})")

    report_path = Path(args.report) if args.report else (
        config.DB_PATH.parent / f"prune-report-{datetime.now():%Y%m%d-%H%M%S}.json"
    )
    report_path.parent.mkdir(exist_ok=True, parents=True)
    with open(report_path, 'w') as f:
        json.dump(plan.to_report(dry_run=args.dry_run), f, indent=2)
    logger.info(f"\nReport written to {report_path}")

    if args.dry_run:
        logger.info(f"[DRY RUN] Would remove {len(plan.to_remove)} films")
        return

    removed = delete_films(plan.remove_ids)
    if removed and args.maintenance:
        run_maintenance(vacuum=True, analyze=True)
    logger.info(f"Removed {removed} films")


def cmd_breakdown(args: argparse.Namespace) -> None:
    """Show the arthouse score breakdown for films matching a title."""
    init_db()
    films = find_films_by_title(args.title)
    if not films:
        logger.info(f"No films matching '{args.title}'")
        return

    for film in films:
        b = score_breakdown(film)
        verdict = "keep" if b.total >= args.threshold or film.tier in (1, 2) else "below threshold"
        logger.info(f"\n{film.title} ({film.year}) - tier {film.tier}")
        logger.info("-" * 40)
        logger.info(f"  Popularity:    {b.popularity:+4}  (popularity {film.popularity:.1f})")
        logger.info(f"  Vote pattern:  {b.vote_pattern:+4}  ({film.vote_average:.1f} from {film.vote_count} votes)")
        logger.info(f"  Genres:        {b.genre:+4}  ({', '.join(film.genres) or 'none'})")
        logger.info(f"  Tags:          {b.tags:+4}  ({', '.join(film.derived_tags) or 'none'})")
        logger.info(f"  Country:       {b.country:+4}  ({film.country or 'unknown'})")
        logger.info(f"  Total:         {b.total:4}  -> {verdict}")


def _print_page(page: DiscoveryPage, args: argparse.Namespace, heading: str) -> None:
    if args.json:
        logger.info(json.dumps(page.to_dict(), indent=2))
        return

    if not page.items:
        logger.info(f"No films for {heading}")
        return

    logger.info(f"\n{heading} (page {page.page}/{page.total_pages}, {page.total} films):")
    start = (page.page - 1) * args.limit
    for i, (film, score) in enumerate(zip(page.items, page.scores), start + 1):
        directors = f" - {film.primary_director}" if film.primary_director else ""
        logger.info(f"  {i:3}. {film.title} ({film.year}){directors}  [{score:.1f}]")


def _service(args: argparse.Namespace) -> DiscoveryService:
    init_db()
    recorder = None if args.no_record else ImpressionRecorder()
    return DiscoveryService(recorder=recorder)


def cmd_explore(args: argparse.Namespace) -> None:
    """Browse the whole catalog."""
    service = _service(args)
    try:
        page = service.explore(limit=args.limit, page=args.page, sort_by=args.sort)
        _print_page(page, args, f"Explore ({page.params['sort_by']})")
    finally:
        service.close()


def cmd_decade(args: argparse.Namespace) -> None:
    """Browse one decade."""
    service = _service(args)
    try:
        page = service.decade(args.decade, limit=args.limit, page=args.page)
        _print_page(page, args, f"The {page.params['decade']}s")
    finally:
        service.close()


def cmd_mood(args: argparse.Namespace) -> None:
    """Browse by mood."""
    service = _service(args)
    try:
        page = service.mood(','.join(args.moods), limit=args.limit, page=args.page)
        _print_page(page, args, f"Mood: {', '.join(page.params['moods'])}")
    finally:
        service.close()


def cmd_combined(args: argparse.Namespace) -> None:
    """Browse one decade by mood."""
    service = _service(args)
    try:
        page = service.combined(args.decade, ','.join(args.moods), limit=args.limit, page=args.page)
        _print_page(page, args, f"The {page.params['decade']}s, {', '.join(page.params['moods'])}")
    finally:
        service.close()


def cmd_moods(args: argparse.Namespace) -> None:
    """List moods present in the catalog."""
    init_db()
    moods = DiscoveryService().moods()
    if not moods:
        logger.info("No moods assigned yet. Run 'migrate' first.")
        return
    logger.info(f"Available moods ({len(moods)}):")
    for mood in moods:
        logger.info(f"  {mood}")


def cmd_stats(args: argparse.Namespace) -> None:
    """Show catalog statistics."""
    init_db()
    stats = catalog_stats()
    logger.info("\nCatalog Stats")
    logger.info("-" * 30)
    logger.info(f"Films: {stats['total']}")
    for tier, count in stats['tiers'].items():
        logger.info(f"  Tier {tier}: {count}")
    if stats['avg_arthouse_score'] is not None:
        logger.info(f"Average arthouse score: {stats['avg_arthouse_score']:.1f}")


def _add_page_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--limit", type=int, default=DEFAULT_PAGE_LIMIT,
                        help=f"Films per page (default: {DEFAULT_PAGE_LIMIT})")
    parser.add_argument("--page", type=int, default=1, help="Page number (default: 1)")
    parser.add_argument("--json", action="store_true", help="Print the page as JSON")
    parser.add_argument("--no-record", action="store_true",
                        help="Don't count the served films as shown")


def main():
    parser = argparse.ArgumentParser(description="Arthouse Discovery")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Import command
    import_parser = subparsers.add_parser("import", help="Import films from JSON")
    import_parser.add_argument("file", help="JSON file to import")
    import_parser.add_argument("--enrich", action="store_true",
                               help="Compute tags, scores and moods while importing")
    import_parser.add_argument("--maintenance", action="store_true",
                               help="Run VACUUM/ANALYZE after import")
    import_parser.set_defaults(func=cmd_import)

    # Export command
    export_parser = subparsers.add_parser("export", help="Export films to JSON")
    export_parser.add_argument("file", help="Output file")
    export_parser.set_defaults(func=cmd_export)

    # Migrate command
    migrate_parser = subparsers.add_parser("migrate", help="Recompute derived fields for all films")
    migrate_parser.add_argument("--retag", action="store_true",
                                help="Regenerate tags even for films that already have some")
    migrate_parser.add_argument("--reset-counters", action="store_true",
                                help="Reset show counts and last-shown timestamps")
    migrate_parser.add_argument("--maintenance", action="store_true",
                                help="Run ANALYZE after migrating")
    migrate_parser.set_defaults(func=cmd_migrate)

    # Prune command
    prune_parser = subparsers.add_parser("prune", help="Remove mainstream films below the arthouse threshold")
    prune_parser.add_argument("--threshold", type=int, default=ARTHOUSE_PRUNE_THRESHOLD,
                              help=f"Minimum arthouse score to keep (default: {ARTHOUSE_PRUNE_THRESHOLD})")
    prune_parser.add_argument("--dry-run", action="store_true",
                              help="Report what would be removed without deleting")
    prune_parser.add_argument("--report", metavar="PATH", help="Where to write the JSON report")
    prune_parser.add_argument("--maintenance", action="store_true",
                              help="Run VACUUM/ANALYZE after deleting")
    prune_parser.set_defaults(func=cmd_prune)

    # Breakdown command
    breakdown_parser = subparsers.add_parser("breakdown", help="Explain a film's arthouse score")
    breakdown_parser.add_argument("title", help="Title or part of a title")
    breakdown_parser.add_argument("--threshold", type=int, default=ARTHOUSE_PRUNE_THRESHOLD,
                                  help=f"Threshold to compare against (default: {ARTHOUSE_PRUNE_THRESHOLD})")
    breakdown_parser.set_defaults(func=cmd_breakdown)

    # Discovery commands
    explore_parser = subparsers.add_parser("explore", help="Browse the catalog")
    explore_parser.add_argument("--sort", default=SortOption.CURATED.value,
                                choices=[o.value for o in SortOption],
                                help="Sort order (default: curated)")
    _add_page_args(explore_parser)
    explore_parser.set_defaults(func=cmd_explore)

    decade_parser = subparsers.add_parser("decade", help="Browse a decade")
    decade_parser.add_argument("decade", help="Decade, e.g. 1970 or 1970s")
    _add_page_args(decade_parser)
    decade_parser.set_defaults(func=cmd_decade)

    mood_parser = subparsers.add_parser("mood", help="Browse by mood")
    mood_parser.add_argument("moods", nargs='+', help="One or more moods")
    _add_page_args(mood_parser)
    mood_parser.set_defaults(func=cmd_mood)

    combined_parser = subparsers.add_parser("combined", help="Browse a decade by mood")
    combined_parser.add_argument("decade", help="Decade, e.g. 1970 or 1970s")
    combined_parser.add_argument("moods", nargs='+', help="One or more moods")
    _add_page_args(combined_parser)
    combined_parser.set_defaults(func=cmd_combined)

    moods_parser = subparsers.add_parser("moods", help="List moods present in the catalog")
    moods_parser.set_defaults(func=cmd_moods)

    # Stats command
    stats_parser = subparsers.add_parser("stats", help="Show catalog statistics")
    stats_parser.set_defaults(func=cmd_stats)

    args = parser.parse_args()

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(level=log_level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    try:
        args.func(args)
    except InvalidRequest as e:
        parser.error(str(e))


if __name__ == "__main__":
    main()
