"""Deep Research Server - command line runner

Runs one research session and prints progress followed by the report.
"""

import argparse
import asyncio
from dataclasses import replace

from deep_research.agents.orchestrator import ResearchOrchestrator, error_report
from deep_research.config import default_config, settings
from deep_research.models.research import ResearchOptions
from deep_research.services.logger import configure_logging


async def run(args: argparse.Namespace) -> str:
    """Run research for the parsed arguments and return the report."""
    config = default_config()
    if args.mock:
        config = replace(config, mock_mode=True)

    options = ResearchOptions(
        max_results_per_query=args.max_results,
        requirement=args.requirement or "",
        detail_level=args.detail_level,
        report_style=args.mode,
        prompt_type=args.mode,
        parallel_search=args.parallel,
        timeout_seconds=args.timeout,
    )
    orchestrator = ResearchOrchestrator(
        language=args.language,
        provider=args.provider,
        model=args.model,
        search_backend=args.search,
        options=options,
        config=config,
    )

    print(f"Research query: {args.query}")
    print(f"Provider: {orchestrator.provider.value}  Search: {orchestrator.search_backend.value}")
    print("-" * 50)

    report = ""
    async for event in orchestrator.research(args.query, max_iterations=args.iterations):
        event_type = event.event.value
        data = event.data

        if event_type == "queries_generated":
            queries = data.get("queries", [])
            note = " (defaults)" if data.get("fallback") else ""
            print(f"\n[*] Search queries{note}:")
            for i, q in enumerate(queries, 1):
                print(f"  {i}. {q.get('query', '')[:80]}")
                print(f"     Goal: {q.get('researchGoal') or 'N/A'}")

        elif event_type == "iteration_started":
            print(
                f"\n[~] Iteration {data.get('iteration')}/{data.get('max_iterations')}: "
                f"{data.get('queries_count')} queries"
            )

        elif event_type == "search_result":
            print(
                f"  [+] {data.get('query', '')[:60]}: {len(data.get('results', []))} sources, "
                f"{data.get('learnings_count', 0)} learnings"
            )

        elif event_type == "review_completed":
            print(f"\n[?] Review suggested {len(data.get('queries', []))} follow-up queries")

        elif event_type == "synthesis_started":
            print(f"\n[+] Writing report from {data.get('learnings_count')} learnings...")

        elif event_type == "research_complete":
            report = data.get("report", "")
            print(f"\n[*] Research Complete!")
            print(f"   Runtime: {data.get('runtime_ms')}ms")
            print(f"   Iterations: {data.get('iterations')}")
            print(f"   Learnings: {len(data.get('learnings', []))}")

        elif event_type == "error":
            print(f"\n[!] Error: {data.get('message', 'Unknown error')}")

    return report or error_report(args.query, "no report was produced")


def main():
    parser = argparse.ArgumentParser(description="Deep Research Server CLI")
    parser.add_argument("--query", "-q", required=True, help="Research topic")
    parser.add_argument("--language", default=settings.default_language, help="Report language")
    parser.add_argument("--provider", help="anthropic | openrouter | mock (default: from config)")
    parser.add_argument("--model", "-m", help="Model to use for every step (default: from config)")
    parser.add_argument("--search", help="live | tavily | brave | mock (default: from config)")
    parser.add_argument("--iterations", type=int, default=settings.default_max_iterations)
    parser.add_argument("--max-results", type=int, default=settings.search_max_results_per_query)
    parser.add_argument(
        "--detail-level",
        choices=["brief", "standard", "comprehensive"],
        default="standard",
    )
    parser.add_argument(
        "--mode",
        choices=["default", "academic", "technical", "news", "auto"],
        default="default",
        help="System prompt and report style",
    )
    parser.add_argument("--requirement", help="Extra instructions for the report")
    parser.add_argument("--parallel", action="store_true", help="Run searches concurrently")
    parser.add_argument("--timeout", type=float, help="Overall research deadline in seconds")
    parser.add_argument("--mock", action="store_true", help="Use mock LLM and search")

    args = parser.parse_args()

    configure_logging()
    report = asyncio.run(run(args))
    print(f"\n{'='*50}")
    print("REPORT:")
    print(f"{'='*50}")
    print(report)


if __name__ == "__main__":
    main()
