"""outbreak_sim: regional disease-spread simulation.

An individual-based model of one disease spreading through several
independent regions:
  - Four-state health machine (Healthy, Infected, Recovered, Deceased)
  - Density-driven daily contacts, damped by containment policies
  - Threshold-based automatic policy control with hysteresis
  - Seeded, per-region RNG streams for reproducible runs
"""

__version__ = "0.1.0"
