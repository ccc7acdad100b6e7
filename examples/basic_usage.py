"""Basic analytics example wiring a SQLite store through the DI container."""

from datetime import date, timedelta

from dairy_analytics.analytics.sqlite_repository import SQLiteHerdStore
from dairy_analytics.core.config import AnalyticsConfig
from dairy_analytics.core.container import DIContainer
from dairy_analytics.domain.models import Cow, DateRange, ProductionSample


def main() -> None:
    config = AnalyticsConfig(sweep_dispatcher="inline")
    repository = SQLiteHerdStore("demo_dairy.db")
    analytics = DIContainer.create_custom_analytics(
        config=config, store=repository, herd_store=repository, writer=repository
    )

    today = date.today()
    for cow_id, name in ((1, "Bella"), (2, "Daisy")):
        repository.save_cow(
            Cow(id=cow_id, farm_id=1, name=name, tag_number=f"T-{cow_id:03d}")
        )
        for offset in range(14, 0, -1):
            analytics.record_sample(
                ProductionSample(
                    cow_id=cow_id,
                    farm_id=1,
                    production_date=today - timedelta(days=offset),
                    morning=9.0 + cow_id,
                    evening=8.5,
                )
            )

    week = DateRange.trailing(7, today)
    print("Top performers:", analytics.aggregation.top_performers(1, week))
    print("Summary:", analytics.aggregation.production_summary(1, week))
    print("Forecast:", analytics.forecaster.predict(1))
    for alert in analytics.alert_engine.evaluate(1):
        print(f"[{alert.severity.value}] {alert.title}: {alert.message}")
    print("Cache stats:", analytics.cache_stats)


if __name__ == "__main__":
    main()
