"""Pipeline chains: ordered async stages with whole-sequence retry.

    Chain                 - stage composition, retry, bounded batch
    CrawlingChain         - list page -> dedupe -> details -> merge -> save
    ArticleInsightsChain  - iterative tags / image context / score enrichment
    AnalysisChain         - fetch unscored, enrich, persist
    ContentGenerateChain  - criteria, write, render, save newsletter
"""

from chains.analysis import AnalysisChain
from chains.chain import BaseChain, Chain
from chains.content import ContentGenerateChain, render_markdown
from chains.crawling import CrawlingChain
from chains.insights import ArticleInsightsChain, InsightsResult

__all__ = [
    "Chain",
    "BaseChain",
    "CrawlingChain",
    "ArticleInsightsChain",
    "InsightsResult",
    "AnalysisChain",
    "ContentGenerateChain",
    "render_markdown",
]
