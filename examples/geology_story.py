"""Example that prints the annotated geology narrative for an inline table."""

from __future__ import annotations

from cageboard import compose_narrative
from cageboard.exporters import annotated_exporter, text_exporter

DATA = """seismic,tilt,gas_flux,temp
0.005,0.02,400,85
0.006,0.02,405,86
0.009,0.03,420,88
0.004,0.02,398,84
0.012,0.04,460,90
0.003,0.02,390,83
0.004,0.02,395,84
0.010,0.03,430,89
"""


def main() -> None:
    narrative = compose_narrative(DATA, entity="geology")
    print(text_exporter(narrative))
    print()
    print(annotated_exporter(narrative))


if __name__ == "__main__":
    main()
