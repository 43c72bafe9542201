# Services package.
#
# Each module exposes a focused set of async functions that encapsulate
# business logic and database access for one area of the domain:
#
#   article_service       — article lifecycle (create/update/publish/delete)
#   article_queries       — shared published-article listing helpers
#   category_service      — category hierarchy
#   tag_service           — tag management and the tag usage ledger
#   engagement_service    — likes, bookmarks, engagement counts
#   comment_service       — threaded comments
#   notification_service  — notification inbox and fan-out
#   user_service          — users, follows and interests
#   feed_service          — personalised feed and staff picks
#   search_service        — one query across articles, categories and tags
#
# All service functions accept an AsyncSession as their first argument
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.
