import argparse
import json
from dotenv import load_dotenv

# Load environment variables from .env before the engine is created
load_dotenv()


def load_json(path):
    with open(path, encoding="utf-8") as fh:
        return json.load(fh)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Ingest a listings batch and run the deal pipeline.")
    parser.add_argument("listings", help="JSON file holding a list of listing records")
    parser.add_argument("--catalog", help="JSON file holding the buyback catalog (replaces the stored one)")
    parser.add_argument("--top", type=int, default=10, help="how many ranked verdicts to print")
    args = parser.parse_args(argv)

    from dealflow.db import Base, SessionLocal, engine
    from dealflow import crud, services
    from dealflow.schemas import CatalogEntry

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        crud.init_settings(db)
        if args.catalog:
            entries = [CatalogEntry.model_validate(row) for row in load_json(args.catalog)]
            crud.replace_catalog(db, entries)
            print(f"Loaded {len(entries)} catalog rows from {args.catalog}")

        listings = load_json(args.listings)
        if not isinstance(listings, list):
            listings = [listings]
        print(f"Running pipeline over {len(listings)} listing(s)...")
        report = services.run_pipeline(db, listings)

        for stage in report.stages:
            marker = "ok  " if stage.ok else "FAIL"
            print(f"[{marker}] {stage.stage:<10} {stage.summary}")

        print(f"\nTop verdicts ({report.verdicts} ranked):")
        for v in crud.list_verdicts(db, limit=args.top):
            print(f"{v.rank:>3}. {v.composite_score:6.1f}  {v.recommended_action:<5} "
                  f"{v.deal_class:<10} ${v.offer_target or 0:>6.0f}  {v.title}")

        summary = services.portfolio_summary(db)
        print(f"\n{summary.actionable} actionable of {summary.total}: "
              f"profit ${summary.pipeline_profit:,.0f} on offers ${summary.total_offers:,.0f}, "
              f"avg margin {summary.average_margin:.0%}, avg risk {summary.average_risk:.1f}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
