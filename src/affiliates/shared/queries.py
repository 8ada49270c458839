"""Query helpers over Protean repositories."""

PAGE_SIZE = 100


def all_items(queryset, page_size=PAGE_SIZE):
    """Every item matched by ``queryset``, fetched page by page.

    Repository queries return one page (100 rows by default); scans that must
    see every row go through here. Order the queryset for stable paging.
    """
    items = []
    offset = 0
    while True:
        page = queryset.offset(offset).limit(page_size).all()
        items.extend(page.items)
        if len(page.items) < page_size:
            return items
        offset += page_size
