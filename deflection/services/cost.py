from dataclasses import dataclass

# Share of total tokens attributed to the prompt vs. the completion, in tenths
INPUT_SHARE_TENTHS = 7
OUTPUT_SHARE_TENTHS = 3

INPUT_COST_PER_1K = 0.00015
OUTPUT_COST_PER_1K = 0.0006


@dataclass(frozen=True)
class UsageCost:
    tokens_used: int
    input_tokens: int
    output_tokens: int
    cost: float


def calculate_usage(tokens_used: int) -> UsageCost:
    if tokens_used < 0:
        raise ValueError("tokens_used must be >= 0")

    # Integer arithmetic so the floor is exact
    input_tokens = tokens_used * INPUT_SHARE_TENTHS // 10
    output_tokens = tokens_used * OUTPUT_SHARE_TENTHS // 10
    cost = (input_tokens / 1000) * INPUT_COST_PER_1K + (output_tokens / 1000) * OUTPUT_COST_PER_1K
    return UsageCost(tokens_used, input_tokens, output_tokens, cost)


def calculate_cost(tokens_used: int) -> float:
    return calculate_usage(tokens_used).cost
