"""
Migration for enhancing places that belong to curated lists.

Curated lists are shown in the mobile app's "Quick Info" sections, so their
places should carry phone, website, rating, hours and photos. The migration
finds the incomplete ones, runs them through PlaceEnhancementService in
paced batches and reports what happened.
"""
import logging
import time
from typing import Dict, List, Optional, Tuple

from placemarks_admin.enrichment.completeness import missing_fields
from placemarks_admin.models.places import (
    Candidate,
    MigrationOptions,
    MigrationReport,
    PlaceOutcome,
    ValidationResult,
)

logger = logging.getLogger(__name__)

FIELD_NAMES = ("phone", "website", "rating", "hours", "photos")


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class PlaceEnhancementMigration:
    """Find, enhance and validate curated list places."""

    def __init__(self, repository, enhancement_service):
        self.repository = repository
        self.enhancement_service = enhancement_service

    async def _analyze_curated_places(self) -> Tuple[int, List[Candidate]]:
        curated = await self.repository.query_curated_list_places()
        candidates = []
        for item in curated:
            needs = missing_fields(item.record)
            if not needs.has_any():
                continue
            candidates.append(Candidate(
                google_place_id=item.record.google_place_id,
                name=item.record.name,
                list_name=item.list_name or "Unknown List",
                needs_enhancement=needs,
            ))
        logger.info(
            f"Found {len(candidates)} places needing enhancement out of "
            f"{len(curated)} total curated list places"
        )
        return len(curated), candidates

    async def find_places_needing_enhancement(self) -> List[Candidate]:
        """All curated list places missing at least one enrichable field."""
        try:
            _, candidates = await self._analyze_curated_places()
        except Exception as exc:
            logger.error(f"Error fetching curated list places: {exc}")
            return []
        return candidates

    async def migrate_curated_list_places(self, options: Optional[MigrationOptions] = None) -> MigrationReport:
        """
        Enhance every curated list place that is missing data.

        A dry run only logs the places it would enhance; it makes no Google
        calls and writes nothing.
        """
        options = options or MigrationOptions()
        started = time.monotonic()
        report = MigrationReport()
        logger.info(
            f"Starting curated list places enhancement migration "
            f"(batch_size={options.batch_size}, delay={options.delay_between_batches}ms, dry_run={options.dry_run})"
        )

        try:
            report.total_curated_list_places, candidates = await self._analyze_curated_places()
        except Exception as exc:
            logger.error(f"Migration failed: {exc}")
            report.processing_time_ms = _elapsed_ms(started)
            return report

        report.places_needing_enhancement = len(candidates)
        if not candidates:
            logger.info("No places need enhancement")
            report.processing_time_ms = _elapsed_ms(started)
            return report

        if options.dry_run:
            logger.info(f"DRY RUN - would enhance {len(candidates)} places:")
            for candidate in candidates:
                needed = ", ".join(candidate.needs_enhancement.names())
                logger.info(f"  - {candidate.name} ({candidate.google_place_id}) from \"{candidate.list_name}\"; needs: {needed}")
            report.processing_time_ms = _elapsed_ms(started)
            return report

        try:
            batch = await self.enhancement_service.enhance_places(
                [candidate.google_place_id for candidate in candidates],
                batch_size=options.batch_size,
                delay_ms=options.delay_between_batches,
            )
        except Exception as exc:
            logger.error(f"Migration batch failed: {exc}")
            report.processing_time_ms = _elapsed_ms(started)
            return report

        report.enhanced = batch.enhanced
        report.skipped = batch.skipped
        report.errors = batch.errors

        names: Dict[str, str] = {candidate.google_place_id: candidate.name for candidate in candidates}
        for item in batch.results:
            if item.result.error:
                status = "error"
            elif item.result.enhanced:
                status = "enhanced"
            else:
                status = "skipped"
            report.places_processed.append(PlaceOutcome(
                google_place_id=item.place_id,
                name=names.get(item.place_id, "Unknown"),
                status=status,
                error=item.result.error,
                fields_added=item.result.fields_added,
            ))

        report.processing_time_ms = _elapsed_ms(started)
        logger.info(
            f"Migration completed: processed={batch.total_processed} enhanced={report.enhanced} "
            f"skipped={report.skipped} errors={report.errors} "
            f"minutes={round(report.processing_time_ms / 1000 / 60, 1)}"
        )
        return report

    async def validate_enhancement(self) -> ValidationResult:
        """Completeness audit over every curated list place. Read only."""
        try:
            curated = await self.repository.query_curated_list_places()
        except Exception as exc:
            logger.error(f"Validation query failed: {exc}")
            return ValidationResult()

        incomplete_fields = {name: 0 for name in FIELD_NAMES}
        complete = 0
        for item in curated:
            needs = missing_fields(item.record)
            for name in needs.names():
                incomplete_fields[name] += 1
            if not needs.has_any():
                complete += 1

        return ValidationResult(
            total_curated_list_places=len(curated),
            places_with_complete_data=complete,
            incomplete_fields=incomplete_fields,
        )

    @staticmethod
    def generate_migration_report(report: MigrationReport) -> str:
        """Render a migration report as markdown text."""
        success_rate = (
            round(report.enhanced / report.places_needing_enhancement * 100)
            if report.places_needing_enhancement > 0
            else 0
        )

        lines = [
            "# Curated List Places Enhancement Migration Report",
            "",
            "## Summary",
            f"- **Total Places Needing Enhancement**: {report.places_needing_enhancement}",
            f"- **Successfully Enhanced**: {report.enhanced}",
            f"- **Skipped (Already Complete)**: {report.skipped}",
            f"- **Errors**: {report.errors}",
            f"- **Success Rate**: {success_rate}%",
            f"- **Processing Time**: {round(report.processing_time_ms / 1000)} seconds",
            "",
            "## Enhancement Details",
        ]

        enhanced = [place for place in report.places_processed if place.status == "enhanced"]
        errors = [place for place in report.places_processed if place.status == "error"]
        skipped = [place for place in report.places_processed if place.status == "skipped"]

        if enhanced:
            lines.extend(["", f"### Successfully Enhanced Places ({len(enhanced)})"])
            for place in enhanced:
                lines.append(f"- **{place.name}** ({place.google_place_id})")
                added = ", ".join(place.fields_added.names()) if place.fields_added else ""
                if added:
                    lines.append(f"  - Fields added: {added}")

        if errors:
            lines.extend(["", f"### Places with Errors ({len(errors)})"])
            for place in errors:
                lines.append(f"- **{place.name}** ({place.google_place_id})")
                lines.append(f"  - Error: {place.error}")

        if skipped:
            lines.extend(["", f"### Skipped Places ({len(skipped)})"])
            for place in skipped:
                lines.append(f"- **{place.name}** ({place.google_place_id}) - Already has complete data")

        lines.extend(["", "## Recommendations"])
        if report.errors > 0:
            lines.append(f"- Review and retry the {report.errors} places that failed enhancement")
        if success_rate < 90:
            lines.append(f"- Consider investigating why {100 - success_rate}% of places couldn't be enhanced")
        lines.append("- Run validation queries to verify enhancement success")
        lines.append('- Monitor mobile app to confirm "Quick Info" sections now display complete data')

        return "\n".join(lines) + "\n"
