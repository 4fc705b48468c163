import argparse
import logging

from coldstore.config import settings
from coldstore.db import SessionLocal
from coldstore.logging_config import configure_logging
from coldstore.services.expiry_service import sweep

logger = logging.getLogger('coldstore.sweep_expired')


def run() -> int:
    with SessionLocal() as db:
        expired = sweep(db)
        db.commit()
    return expired


def main() -> None:
    parser = argparse.ArgumentParser(description='Expire gate passes whose issue or pickup window has closed')
    parser.parse_args()
    configure_logging(level=settings.log_level.upper())
    expired = run()
    logger.info('sweep finished', extra={'expired': expired})
    print(f'Expired {expired} gate pass(es)')


if __name__ == '__main__':
    main()
