"""Generate slots for every licensed doctor, clinic by clinic.

Usage:
    python -m clinic_backend.regenerate_all_slots [--year 2027] [--clinic-id 3]
"""
import argparse
import logging
import sys

from clinic_backend.core import config
from clinic_backend.core.logging import configure_logging
from clinic_backend.database import SessionLocal, ensure_slot_schema
from clinic_backend.scheduling.admin_slots import bulk_generate_slots_for_all_clinics, bulk_generate_slots_for_clinic

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description='Bulk slot generation')
    parser.add_argument('--year', type=int, default=None, help='Calendar year to fill (default: current clinic year)')
    parser.add_argument('--clinic-id', type=int, default=None, help='Only process this clinic')
    args = parser.parse_args(argv)

    configure_logging(config.LOG_LEVEL)
    ensure_slot_schema()

    failed_clinics: list[int] = []
    db = SessionLocal()
    try:
        if args.clinic_id is not None:
            results = [bulk_generate_slots_for_clinic(db, args.clinic_id, args.year)]
        else:
            summary = bulk_generate_slots_for_all_clinics(db, args.year)
            results = summary['results']
            failed_clinics = summary['failed_clinics']
    finally:
        db.close()

    failures = len(failed_clinics)
    for clinic_id in failed_clinics:
        logger.error('Clinic %s: slot generation failed', clinic_id)

    for result in results:
        failures += len(result['errors'])
        logger.info(
            'Clinic %s (%s): %s doctors, %s slots created',
            result['clinic_id'],
            result['clinic_name'],
            result['processed_doctors'],
            result['total_slots_created'],
        )
        for error in result['errors']:
            logger.warning('Doctor %s (%s): %s', error['doctor_id'], error['doctor_name'], error['error'])

    return 1 if failures else 0


if __name__ == '__main__':
    sys.exit(main())
