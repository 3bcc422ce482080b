"""
commission_batch -- Lock-guarded, fault-isolated batch calculations.

Runs the overnight swap and daily PnL calculations over all active positions
for a trading day: one result per position, failures isolated per item, the
whole result set persisted in one write.

Architecture:
    commission_batch/ sits above commission_kernel and commission_engines.
    Nothing in the kernel or the engines imports from it.
"""
