"""
Attendance Analyzer — command-line entry point.

Reads an attendance export, aggregates per student, builds the period
series and prints trend statistics. Optional Excel / CSV / PDF exports.
"""

import argparse
import logging
import sys
from datetime import date, datetime

from analyzer import config
from analyzer.aggregator import process_records, summarize_by_class, to_dataframe, to_rows
from analyzer.cache import AnalyticsCache
from analyzer.completer import complete
from analyzer.dates import parse_date
from analyzer.insights import generate_all_insights
from analyzer.models import AggregationOptions, Granularity, Metric, RegressionOptions
from analyzer.moving_average import moving_average
from analyzer.parser import load_records
from analyzer.periods import group_by_period
from analyzer.regression import regress
from analyzer.report_builder import export_csv, generate_excel_export, generate_trend_report_pdf

logger = logging.getLogger("attendance")


def _date_arg(value: str) -> date:
    parsed = parse_date(value)
    if parsed is None:
        raise argparse.ArgumentTypeError(f"invalid date: {value!r} (expected DD.MM.YYYY)")
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Analyze school attendance exports.")
    parser.add_argument("file", help="CSV, XLSX or ODS export")
    parser.add_argument("--from", dest="range_start", type=_date_arg, help="range start (DD.MM.YYYY)")
    parser.add_argument("--to", dest="range_end", type=_date_arg, help="range end (DD.MM.YYYY)")
    parser.add_argument("--today", type=_date_arg, help="evaluate deadlines as of this date")
    parser.add_argument("--granularity", choices=[g.value for g in Granularity], default="weekly")
    parser.add_argument("--metric", choices=[m.value for m in Metric], default="tardiness")
    parser.add_argument("--window", type=int, default=config.MOVING_AVERAGE_WINDOW)
    parser.add_argument("--weeks", type=int, default=config.TRAILING_WEEKS, help="trailing weeks")
    parser.add_argument("--exclude-outliers", action="store_true")
    parser.add_argument("--relative", action="store_true", help="normalize per school day")
    parser.add_argument("--excel", help="write Excel export to this path")
    parser.add_argument("--csv", help="write CSV export to this path")
    parser.add_argument("--pdf", help="write trend report PDF to this path")
    return parser


def run(args: argparse.Namespace) -> int:
    now = datetime.combine(args.today, datetime.now().time()) if args.today else datetime.now()
    granularity = Granularity(args.granularity)
    metric = Metric(args.metric)
    options = AggregationOptions(granularity, args.range_start, args.range_end)

    records = load_records(args.file)
    cache = AnalyticsCache()
    cache.reset()

    stats, entries = process_records(
        records,
        options,
        now,
        trailing_weeks=args.weeks,
        deadline_days=config.EXCUSE_DEADLINE_DAYS,
        lesson_end_times=config.LESSON_END_TIMES,
    )
    print(to_dataframe(stats).to_string(index=False))
    print()
    for cls in summarize_by_class(stats).values():
        print(f"{cls['class'] or '-'}: {cls['students']} students, "
              f"{cls['tardiness']} late arrivals, {cls['absence']} absence days")

    series = group_by_period(entries, granularity, options.range_start, options.range_end)
    series = complete(series, granularity, config.SPARSE_SERIES_THRESHOLD)
    cache.update_all_classes(series)
    cache.update_all_students(series)
    class_avgs = cache.with_class_averages(series, stats)
    if class_avgs:
        latest = class_avgs[-1]
        print()
        print(f"{latest['label']}: {latest['tardiness_avg']:.2f} late arrivals and "
              f"{latest['absence_total_avg']:.2f} absence days per class "
              f"({latest['class_count']} classes)")

    series = moving_average(series, args.window, metric, args.relative, granularity)
    reg_options = RegressionOptions(args.exclude_outliers, args.relative)
    annotated, result = regress(series, metric, reg_options, granularity)
    other = Metric.ABSENCE if metric == Metric.TARDINESS else Metric.TARDINESS
    _, other_result = regress(series, other, reg_options, granularity)

    print()
    print(f"Trend ({metric.value}): {result.trend}")
    print(f"  slope={result.slope:.3f} intercept={result.intercept:.3f} r2={result.r_squared:.3f}")
    if result.prediction is not None:
        print(f"  forecast next period: {result.prediction:.2f}")

    tardiness_result = result if metric == Metric.TARDINESS else other_result
    absence_result = other_result if metric == Metric.TARDINESS else result
    insights = generate_all_insights(stats, entries, tardiness_result, absence_result, args.weeks)
    print()
    print(insights["executive_summary"])

    rows = to_rows(stats)
    if args.excel:
        generate_excel_export(args.excel, rows, config.SCHOOL_NAME)
    if args.csv:
        export_csv(args.csv, rows)
    if args.pdf:
        generate_trend_report_pdf(args.pdf, config.SCHOOL_NAME, annotated, result, metric,
                                  relative=args.relative, insights=insights)
    return 0


def main(argv=None) -> int:
    config.configure_logging()
    args = build_parser().parse_args(argv)
    try:
        return run(args)
    except (ValueError, OSError) as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
