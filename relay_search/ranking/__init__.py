"""Search ranking and result fusion components.

Contents
- ``relevance``: engagement boost and hashtag trend decay
- ``fusion``: Reciprocal Rank Fusion for hybrid search
"""
