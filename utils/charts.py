import io

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402


def weekly_chart(week):
    """PNG bytes of a bar chart for ``StatsService.weekly`` output."""
    labels = [d["day"] for d in week]
    counts = [d["count"] for d in week]

    fig, ax = plt.subplots(figsize=(6, 3))
    ax.bar(labels, counts, color="#818cf8")
    ax.set_ylim(0, max(counts + [1]) + 1)
    ax.yaxis.get_major_locator().set_params(integer=True)
    ax.grid(True, axis="y", alpha=0.3)

    buf = io.BytesIO()
    fig.savefig(buf, format="png", bbox_inches="tight")
    plt.close(fig)
    return buf.getvalue()
