"""
Bookstore demo: the four exercise sections (CRUD, advanced queries,
aggregation pipelines, indexing) expressed as operation lists.

Each section runs in its own session, so a section opens and closes its own
connection.
"""

from collections import OrderedDict
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .harness import OperationHarness, RunSummary
from .models import ConnectionTarget, Operation
from .report_sink import ConsoleSink

PAGE = 2
PER_PAGE = 5


def basic_crud() -> List[Operation]:
    return [
        Operation.query("Books in Fiction genre", {"genre": "Fiction"}),
        Operation.query("Books published after 1950", {"published_year": {"$gt": 1950}}),
        Operation.query("Books by George Orwell", {"author": "George Orwell"}),
        Operation.update_one(
            'Updating price of "1984" to 11.99',
            {"title": "1984"},
            {"$set": {"price": 11.99}},
        ),
        Operation.delete_one('Deleting "Moby Dick"', {"title": "Moby Dick"}),
    ]


def advanced_queries() -> List[Operation]:
    return [
        Operation.query(
            "In-stock books published after 2010",
            {"in_stock": True, "published_year": {"$gt": 2010}},
        ),
        Operation.query(
            "Projection (title, author, price)",
            projection={"title": 1, "author": 1, "price": 1, "_id": 0},
        ),
        Operation.query("Books sorted by price (ascending)", sort=[("price", 1)]),
        Operation.query("Books sorted by price (descending)", sort=[("price", -1)]),
        Operation.paginate(f"Pagination (page {PAGE}, {PER_PAGE} books per page)", PAGE, PER_PAGE),
    ]


def aggregation_pipelines() -> List[Operation]:
    return [
        Operation.aggregate("Average price by genre", [
            {"$group": {"_id": "$genre", "avgPrice": {"$avg": "$price"}, "count": {"$sum": 1}}},
            {"$sort": {"avgPrice": -1}},
        ]),
        Operation.aggregate("Author with most books", [
            {"$group": {"_id": "$author", "bookCount": {"$sum": 1}}},
            {"$sort": {"bookCount": -1}},
            {"$limit": 1},
        ]),
        Operation.aggregate("Books by publication decade", [
            {"$project": {
                "decade": {"$multiply": [{"$floor": {"$divide": ["$published_year", 10]}}, 10]},
            }},
            {"$group": {"_id": "$decade", "count": {"$sum": 1}}},
            {"$sort": {"_id": 1}},
        ]),
    ]


def manage_indexes() -> List[Operation]:
    return [
        Operation.index("Creating index on title field", [("title", 1)]),
        Operation.index(
            "Creating compound index on author and published_year",
            [("author", 1), ("published_year", 1)],
        ),
        Operation.explain("Explain without index (genre)", {"genre": "Fiction"}),
        Operation.explain("Explain with index (title)", {"title": "1984"}),
    ]


SectionBuilder = Callable[[], List[Operation]]

SECTIONS: "OrderedDict[str, Tuple[str, SectionBuilder]]" = OrderedDict([
    ("crud", ("Basic CRUD Operations", basic_crud)),
    ("advanced", ("Advanced Queries", advanced_queries)),
    ("aggregation", ("Aggregation Pipelines", aggregation_pipelines)),
    ("indexes", ("Indexing", manage_indexes)),
])


def run_demo(
    harness: OperationHarness,
    target: ConnectionTarget,
    sections: Optional[Iterable[str]] = None,
    console: Optional[ConsoleSink] = None,
    timeout_ms: Optional[int] = None,
    concurrent: bool = False,
    max_workers: Optional[int] = None,
) -> Dict[str, RunSummary]:
    """Run the selected sections (all by default) in declaration order.

    Unknown section keys raise ``KeyError`` before anything connects.
    """
    keys = list(sections) if sections else list(SECTIONS)
    unknown = [k for k in keys if k not in SECTIONS]
    if unknown:
        raise KeyError(f"Unknown section(s): {', '.join(unknown)}. Choose from {', '.join(SECTIONS)}")

    summaries: Dict[str, RunSummary] = {}
    for key in SECTIONS:
        if key not in keys:
            continue
        title, build = SECTIONS[key]
        if console is not None:
            console.heading(title)
        summaries[key] = harness.run(
            target, build(), timeout_ms=timeout_ms, concurrent=concurrent, max_workers=max_workers,
        )
    return summaries
